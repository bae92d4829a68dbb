# src/asvflow/commands/classify.py
from __future__ import annotations

from asvflow.commands.common import add_classify_opts, make_backend, open_store, params_from_args
from asvflow.pipeline.stages import classify_stage


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "classify", parents=[parent],
        help="Assign taxonomy to every non-chimeric variant (IDTAXA).",
    )
    add_classify_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    n = classify_stage(params, open_store(params), make_backend(params))
    print(f"[ok] {n} variant(s) classified")
