# src/asvflow/commands/learn_errors.py
from __future__ import annotations

from asvflow.commands.common import (add_errors_opts, add_runs_opt, make_backend, open_store,
                                     params_from_args, parse_runs)
from asvflow.pipeline.stages import learn_errors_stage


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "learn-errors", parents=[parent],
        help="Learn one error model per run and strand from the filtered reads.",
    )
    add_runs_opt(p)
    add_errors_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    reports = learn_errors_stage(params, open_store(params), make_backend(params), parse_runs(args.runs))
    print(f"[ok] error models learned for {sum(1 for r in reports if r.processed)} run(s)")
