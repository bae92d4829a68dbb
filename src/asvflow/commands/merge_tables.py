# src/asvflow/commands/merge_tables.py
from __future__ import annotations

from asvflow.commands.common import open_store, params_from_args
from asvflow.pipeline.stages import merge_stage


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "merge", parents=[parent],
        help="Union per-run sequence tables by variant digest and collapse replicate halves.",
    )
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    table = merge_stage(params, open_store(params))
    print(f"[ok] merged table: {len(table.samples)} sample(s) x {len(table.variants)} variant(s)")
