# src/asvflow/commands/build_table.py
from __future__ import annotations

from asvflow.commands.common import add_table_opts, open_store, params_from_args
from asvflow.pipeline.stages import table_stage


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "build-table", parents=[parent],
        help="Join taxonomy, apply abundance/occurrence thresholds, write asv_table.tsv.",
    )
    add_table_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    n = table_stage(params, open_store(params))
    print(f"[ok] final table: {n} variant(s) → {params.project_dir / 'asv_table.tsv'}")
