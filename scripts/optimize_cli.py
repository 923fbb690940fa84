#!/usr/bin/env python3
"""CLI entrypoint for a single optimizer run.

Usage examples:
    python scripts/optimize_cli.py --input request.json
    python scripts/optimize_cli.py --input request.json --seed 7 --trials 32

Flags:
    --input PATH          JSON file with an OptimizationRequest body.
    --seed N              Heuristic seed (reproducible "try again" runs).
    --trials R            Heuristic trial count override.
    --exact-threshold M   Max free variables solved by exhaustive enumeration.
    --log-level LEVEL     Logging level (INFO, DEBUG, WARNING, ERROR).

Exit codes:
    0 on success (including an infeasible plan), 2 on invalid input,
    1 on unexpected exception.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from app.config import settings
from app.schemas.optimization_problem import OptimizationRequest, SolverOverrides
from app.services.optimization.errors import InvalidProblem
from app.services.optimization.optimization_service import OptimizationService


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the action-selection optimizer on a JSON request.")
    parser.add_argument("--input", type=str, required=True, help="Path to request JSON.")
    parser.add_argument("--seed", type=int, default=None, help="Heuristic seed.")
    parser.add_argument("--trials", type=int, default=None, help="Heuristic trial count.")
    parser.add_argument("--exact-threshold", type=int, default=None, help="Exact enumeration threshold.")
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Logging level (e.g. INFO, DEBUG).",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
        stream=sys.stderr,
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    log = logging.getLogger(__name__)

    try:
        raw = json.loads(Path(args.input).read_text(encoding="utf-8"))
        request = OptimizationRequest.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        log.error("optimize.cli.bad_input: %s", e)
        return 2

    cli_overrides = {
        k: v
        for k, v in {"seed": args.seed, "trials": args.trials, "exact_threshold": args.exact_threshold}.items()
        if v is not None
    }
    if cli_overrides:
        base = request.solver.model_dump() if request.solver else {}
        request = request.model_copy(update={"solver": SolverOverrides(**{**base, **cli_overrides})})

    try:
        solution = OptimizationService.from_settings(settings).optimize(request)
    except InvalidProblem as e:
        log.error("optimize.cli.invalid_problem: %s", e)
        print(e.report.model_dump_json(indent=2))
        return 2
    except KeyboardInterrupt:
        log.warning("optimize.cli.interrupted")
        return 130
    except Exception:
        log.exception("optimize.cli.error")
        return 1

    print(solution.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
