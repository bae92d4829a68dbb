# src/asvflow/commands/remove_chimeras.py
from __future__ import annotations

from asvflow.commands.common import add_chimera_opts, make_backend, open_store, params_from_args
from asvflow.pipeline.stages import chimera_stage


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "remove-chimeras", parents=[parent],
        help="Remove bimeras from the merged table and write the final per-sample statistics.",
    )
    add_chimera_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    table = chimera_stage(params, open_store(params), make_backend(params))
    print(f"[ok] {len(table.variants)} non-chimeric variant(s)")
