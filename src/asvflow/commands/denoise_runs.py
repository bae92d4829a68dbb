# src/asvflow/commands/denoise_runs.py
from __future__ import annotations

from asvflow.commands.common import (add_denoise_opts, add_runs_opt, make_backend, open_store,
                                     params_from_args, parse_runs)
from asvflow.pipeline.stages import denoise_stage


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "denoise", parents=[parent],
        help="Per run: dereplicate → denoise (pooled by default) → merge pairs; runs in parallel with --jobs.",
    )
    add_runs_opt(p)
    add_denoise_opts(p)
    p.set_defaults(func=run)


def run(args) -> None:
    params = params_from_args(args)
    reports = denoise_stage(params, open_store(params), make_backend(params), parse_runs(args.runs))
    ok = sum(r.processed for r in reports)
    failed = sum(r.failed for r in reports)
    print(f"[ok] denoised {len(reports)} run(s): {ok} sample(s) merged, {failed} failed")
