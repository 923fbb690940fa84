# copilot_optimizer/app/config.py

from typing import Optional, TextIO
import logging
import sys

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from pythonjsonlogger.json import JsonFormatter

load_dotenv()

# Optimizer context fields; any of them missing from a record is dropped
LOG_FIELDS = (
    "%(asctime)s %(levelname)s %(name)s %(message)s "
    "%(action_id)s %(action_count)s %(free_count)s %(required_count)s "
    "%(solver_mode)s %(trials)s %(iterations)s %(restarts)s "
    "%(objective_value)s %(status)s %(reason)s %(warning)s"
)


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter that leaves out fields a log call did not set."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        for key in [k for k, v in log_record.items() if v is None]:
            del log_record[key]


def setup_json_logging(log_level: int = logging.INFO, stream: Optional[TextIO] = None) -> None:
    """Send everything under the `app` logger to `stream` (stdout) as one JSON object per line."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(CustomJsonFormatter(LOG_FIELDS))

    app_logger = logging.getLogger("app")
    app_logger.setLevel(log_level)
    # create_app() may run more than once per process (tests)
    app_logger.handlers = [handler]
    app_logger.propagate = False


class Settings(BaseSettings):
    # App
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    COPILOT_API_SECRET: str = ""

    # Solver
    OPTIMIZER_EXACT_THRESHOLD: int = Field(default=20, ge=0, le=26)
    OPTIMIZER_HEURISTIC_TRIALS: int = 16
    OPTIMIZER_ITERATION_BUDGET: int = 2000  # single-flip moves per heuristic trial
    OPTIMIZER_MAX_WORKERS: int = 4
    OPTIMIZER_DEADLINE_SECONDS: Optional[float] = None
    OPTIMIZER_DEFAULT_SEED: Optional[int] = None  # None -> fresh seed per request (reported back)

    # Constraint defaults (used when a request leaves a budget out)
    DEFAULT_EFFORT_BUDGET_MINUTES: int = 180  # 3 hours/week
    DEFAULT_UPFRONT_CASH: float = 200.0
    DEFAULT_MIN_CASH_BUFFER: float = 50.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("OPTIMIZER_HEURISTIC_TRIALS", "OPTIMIZER_ITERATION_BUDGET", "OPTIMIZER_MAX_WORKERS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be a positive integer, got {v}")
        return v

    @field_validator("OPTIMIZER_DEADLINE_SECONDS")
    @classmethod
    def validate_deadline(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError(f"OPTIMIZER_DEADLINE_SECONDS must be >= 0, got {v}")
        return v


settings = Settings()
