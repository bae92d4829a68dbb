# src/asvflow/commands/filter_reads.py
from __future__ import annotations

from asvflow.commands.common import (add_filter_opts, add_runs_opt, make_backend, open_store,
                                     params_from_args, parse_runs)
from asvflow.pipeline.stages import filter_stage


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "filter", parents=[parent],
        help="Quality-filter and trim reads per run; exclude samples below --min-reads.",
    )
    add_runs_opt(p)
    add_filter_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    reports = filter_stage(params, open_store(params), make_backend(params), parse_runs(args.runs))
    kept = sum(r.processed for r in reports)
    dropped = sum(r.excluded for r in reports)
    print(f"[ok] filtering complete: {kept} sample(s) kept, {dropped} excluded")
