# src/asvflow/commands/doctor.py
from __future__ import annotations

import shutil
import subprocess
import sys

from asvflow.commands.common import params_from_args
from asvflow.utils.logger import get_logger
from asvflow.utils.runner import run_command

LOG = get_logger("doctor")

R_PACKAGES = ("dada2", "DECIPHER")


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "doctor", parents=[parent],
        help="Preflight checks for Rscript and the R packages the pipeline drives.",
    )
    p.set_defaults(func=run)


def _ok(x: bool) -> str:
    return "OK" if x else "MISSING"


def run(args) -> None:
    params = params_from_args(args)

    rscript = shutil.which(params.rscript)
    print(f"[check] {params.rscript} on PATH: {_ok(bool(rscript))} ({rscript or 'not found'})")
    if not rscript:
        print(f"error: '{params.rscript}' executable not found on PATH.", file=sys.stderr)
        sys.exit(2)

    bad = []
    for pkg in R_PACKAGES:
        expr = f'suppressPackageStartupMessages(library({pkg})); cat(as.character(packageVersion("{pkg}")))'
        try:
            out = run_command([params.rscript, "--vanilla", "-e", expr], capture=True, label=f"R:{pkg}").stdout.strip()
            print(f"[check] R package '{pkg}': OK ({out or 'unknown version'})")
        except subprocess.CalledProcessError:
            print(f"[check] R package '{pkg}': MISSING")
            bad.append(pkg)

    if bad:
        print("error: missing R packages: " + ", ".join(bad), file=sys.stderr)
        sys.exit(4)
    print("[ok] environment looks good.")
