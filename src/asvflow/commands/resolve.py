# src/asvflow/commands/resolve.py
from __future__ import annotations

from asvflow.commands.common import add_resolve_opts, open_store, params_from_args
from asvflow.pipeline.stages import resolve_stage
from asvflow.utils.logger import get_logger

LOG = get_logger("resolve")


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "resolve", parents=[parent],
        help="Pair forward/reverse files, derive runs and logical samples, write samples.tsv.",
    )
    add_resolve_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    store = open_store(params)
    sset = resolve_stage(params, store)
    for r in sset.runs:
        LOG.info("Run %s: %d sample(s)", r.id, len(r.samples))
    print(f"[ok] {len(sset)} sample(s) in {len(sset.runs)} run(s) → {store.root / 'samples.tsv'}")
