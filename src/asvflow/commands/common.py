# src/asvflow/commands/common.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from asvflow.config.io import load_params
from asvflow.config.schema import CHIMERA_METHODS, POOLING_METHODS, Params
from asvflow.dada2.commands import RscriptBackend
from asvflow.store.checkpoint import CheckpointStore


# -------- Option groups ------------------------------------------------------
# Every stage option defaults to None so that an unset flag never overrides the params file.

def add_resolve_opts(p) -> None:
    p.add_argument("--forward-dir", type=Path, default=None, help="Directory of forward (R1) reads.")
    p.add_argument("--reverse-dir", type=Path, default=None, help="Directory of reverse (R2) reads.")
    p.add_argument("--forward-suffix", type=str, default=None, help="Forward filename suffix (default _R1.fastq.gz).")
    p.add_argument("--reverse-suffix", type=str, default=None, help="Reverse filename suffix (default _R2.fastq.gz).")
    p.add_argument("--min-file-bytes", type=int, default=None, help="Files at or below this size are skipped.")
    p.add_argument("--sample-pattern", type=str, default=None,
                   help="Regex with named group 'run' (and optional 'logical', 'replicate') applied to sample names.")


def add_filter_opts(p) -> None:
    p.add_argument("--trunc-len-f", type=int, default=None)
    p.add_argument("--trunc-len-r", type=int, default=None)
    p.add_argument("--trim-left-f", type=int, default=None)
    p.add_argument("--trim-left-r", type=int, default=None)
    p.add_argument("--max-ee-f", type=float, default=None)
    p.add_argument("--max-ee-r", type=float, default=None)
    p.add_argument("--trunc-q", type=int, default=None)
    p.add_argument("--min-reads", type=int, default=None, help="Samples with fewer filtered reads are excluded.")


def add_errors_opts(p) -> None:
    p.add_argument("--n-bases-learn", type=int, default=None, help="Bases used to learn each error model.")


def add_denoise_opts(p) -> None:
    p.add_argument("--jobs", type=int, default=None, help="Runs processed in parallel.")
    p.add_argument("--pooling-method", choices=POOLING_METHODS, default=None)
    p.add_argument("--min-overlap", type=int, default=None)
    p.add_argument("--max-mismatch", type=int, default=None)
    p.add_argument("--on-sample-error", choices=("skip", "abort"), default=None,
                   help="skip: mark the sample failed and continue; abort: fail the whole run.")


def add_chimera_opts(p) -> None:
    p.add_argument("--chimera-method", choices=CHIMERA_METHODS, default=None)


def add_classify_opts(p) -> None:
    p.add_argument("--training-set", type=Path, default=None, help="IDTAXA training set (.RData with 'trainingSet').")
    p.add_argument("--tax-threshold", type=int, default=None)
    p.add_argument("--tax-strand", choices=("top", "bottom", "both"), default=None)


def add_table_opts(p) -> None:
    p.add_argument("--min-abundance", type=int, default=None, help="Keep variants with total >= this.")
    p.add_argument("--min-occurrence", type=int, default=None, help="Keep variants present in >= this many samples.")


def add_runs_opt(p) -> None:
    p.add_argument("--runs", type=str, default=None, help="Comma-separated run ids (default: all).")


# -------- Params / store / backend --------------------------------------------

_PARAM_FIELDS = set(Params.model_fields)


def params_from_args(args) -> Params:
    overrides: Dict[str, Any] = {k: v for k, v in vars(args).items() if k in _PARAM_FIELDS and v is not None}
    try:
        return load_params(getattr(args, "params", None), **overrides)
    except ValidationError as e:
        print(f"error: invalid parameters:\n{e}", file=sys.stderr)
        sys.exit(2)


def parse_runs(s: Optional[str]) -> Optional[List[str]]:
    if not s:
        return None
    return [r.strip() for r in s.split(",") if r.strip()] or None


def open_store(params: Params) -> CheckpointStore:
    params.project_dir.mkdir(parents=True, exist_ok=True)
    return CheckpointStore(params.project_dir)


def make_backend(params: Params) -> RscriptBackend:
    return RscriptBackend(rscript=params.rscript, threads=params.threads, show_stdout=params.show_r)
