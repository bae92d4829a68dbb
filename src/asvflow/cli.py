# src/asvflow/cli.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from asvflow.errors import AsvflowError
from asvflow.utils.logger import setup_logger

from asvflow.commands import init as cmd_init
from asvflow.commands import doctor as cmd_doctor
from asvflow.commands import resolve as cmd_resolve
from asvflow.commands import filter_reads as cmd_filter
from asvflow.commands import learn_errors as cmd_errors
from asvflow.commands import denoise_runs as cmd_denoise
from asvflow.commands import merge_tables as cmd_merge
from asvflow.commands import remove_chimeras as cmd_chimeras
from asvflow.commands import classify as cmd_classify
from asvflow.commands import build_table as cmd_table
from asvflow.commands import auto_run as cmd_auto


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asvflow",
        description="Paired-end amplicon pipeline: resolve, filter, learn-errors, denoise, merge, "
                    "remove-chimeras, classify, build-table (or auto-run).",
    )

    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--params", type=Path, default=None, help="YAML/JSON params file ('params' mapping or top-level).")
    parent.add_argument("--project-dir", type=Path, default=None, help="Directory holding every stage artifact.")
    parent.add_argument("--threads", type=int, default=None, help="Threads handed to R per call.")
    parent.add_argument("--rscript", type=str, default=None, help="Rscript executable.")
    parent.add_argument("--show-r", dest="show_r", action="store_true", default=None,
                        help="Stream R output live to console.")
    parent.add_argument("-v", "--verbose", action="store_true", help="DEBUG-level console logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    cmd_init.setup_parser(subparsers, parent)
    cmd_doctor.setup_parser(subparsers, parent)
    cmd_resolve.setup_parser(subparsers, parent)
    cmd_filter.setup_parser(subparsers, parent)
    cmd_errors.setup_parser(subparsers, parent)
    cmd_denoise.setup_parser(subparsers, parent)
    cmd_merge.setup_parser(subparsers, parent)
    cmd_chimeras.setup_parser(subparsers, parent)
    cmd_classify.setup_parser(subparsers, parent)
    cmd_table.setup_parser(subparsers, parent)
    cmd_auto.setup_parser(subparsers, parent)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logger = setup_logger(verbose=args.verbose)
    logger.debug("Parsed args: %r", args)
    try:
        args.func(args)
    except AsvflowError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
