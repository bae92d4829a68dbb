# src/asvflow/commands/init.py
from __future__ import annotations

import sys
from pathlib import Path

from asvflow.commands.common import add_resolve_opts, params_from_args
from asvflow.config.io import write_params
from asvflow.utils.logger import get_logger

LOG = get_logger("init")


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "init", parents=[parent],
        help="Write a params.yaml with every setting at its default (plus any flags given).",
    )
    p.add_argument("--output-file", type=Path, default=Path("params.yaml"))
    p.add_argument("--force", action="store_true")
    add_resolve_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    out: Path = args.output_file
    if out.exists() and not args.force:
        LOG.error("Refusing to overwrite: %s (use --force)", out)
        print(f"error: {out} exists (use --force)", file=sys.stderr)
        sys.exit(1)
    params = params_from_args(args)
    write_params(out, params)
    print(f"[ok] params → {out}")
