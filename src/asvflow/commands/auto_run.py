# src/asvflow/commands/auto_run.py
from __future__ import annotations

import sys
from typing import Callable, Dict, List

from asvflow.commands.common import (
    add_chimera_opts, add_classify_opts, add_denoise_opts, add_errors_opts, add_filter_opts,
    add_resolve_opts, add_runs_opt, add_table_opts, make_backend, open_store, params_from_args, parse_runs,
)
from asvflow.config.schema import Params
from asvflow.dada2.backend import InferenceBackend
from asvflow.pipeline import stages as S
from asvflow.store import artifacts as A
from asvflow.store.checkpoint import CheckpointStore
from asvflow.utils.logger import get_logger

LOG = get_logger("auto")

# artifact whose presence marks a stage as done (run-scoped stages: one per run)
_DONE_MARKER: Dict[str, A.ArtifactSpec] = {
    "resolve": A.SAMPLES,
    "filter": A.FILTER_STATS,
    "learn-errors": A.ERROR_MODEL_R,
    "denoise": A.RUN_PROVENANCE,
    "merge": A.SEQTAB,
    "remove-chimeras": A.SEQTAB_NOCHIM,
    "classify": A.TAXONOMY,
    "build-table": A.ASV_TABLE,
}


def setup_parser(subparsers, parent) -> None:
    p = subparsers.add_parser(
        "auto-run", parents=[parent],
        help="Run every stage in order (resolve → filter → learn-errors → denoise → merge → remove-chimeras → classify → build-table).",
    )
    p.add_argument("--from-stage", choices=S.STAGES, default=S.STAGES[0], help="First stage to run (resume point).")
    p.add_argument("--to-stage", choices=S.STAGES, default=S.STAGES[-1], help="Last stage to run.")
    p.add_argument("--skip-classify", action="store_true", help="Build the final table without taxonomy.")
    p.add_argument("--dry-run", action="store_true", help="Print the stage plan and which artifacts exist, then exit.")
    add_runs_opt(p)
    add_resolve_opts(p)
    add_filter_opts(p)
    add_errors_opts(p)
    add_denoise_opts(p)
    add_chimera_opts(p)
    add_classify_opts(p)
    add_table_opts(p)
    p.set_defaults(func=run)


def plan_stages(first: str, last: str, *, skip_classify: bool = False) -> List[str]:
    i, j = S.STAGES.index(first), S.STAGES.index(last)
    if i > j:
        raise ValueError(f"--from-stage {first} comes after --to-stage {last}")
    chosen = list(S.STAGES[i: j + 1])
    if skip_classify and "classify" in chosen:
        chosen.remove("classify")
    return chosen


def _is_done(store: CheckpointStore, stage: str) -> bool:
    spec = _DONE_MARKER[stage]
    if spec.per_run:
        return bool(store.runs_with(spec))
    return store.exists(spec)


def run_stages(
    chosen: List[str],
    params: Params,
    store: CheckpointStore,
    backend: InferenceBackend,
    *,
    runs=None,
) -> None:
    actions: Dict[str, Callable[[], object]] = {
        "resolve": lambda: S.resolve_stage(params, store),
        "filter": lambda: S.filter_stage(params, store, backend, runs),
        "learn-errors": lambda: S.learn_errors_stage(params, store, backend, runs),
        "denoise": lambda: S.denoise_stage(params, store, backend, runs),
        "merge": lambda: S.merge_stage(params, store),
        "remove-chimeras": lambda: S.chimera_stage(params, store, backend),
        "classify": lambda: S.classify_stage(params, store, backend),
        "build-table": lambda: S.table_stage(params, store),
    }
    for stage in chosen:
        LOG.info("=== %s ===", stage)
        actions[stage]()


def run(args) -> None:
    params = params_from_args(args)
    try:
        chosen = plan_stages(args.from_stage, args.to_stage, skip_classify=args.skip_classify)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)
    store = open_store(params)

    if args.dry_run:
        for stage in S.STAGES:
            mark = "run " if stage in chosen else "skip"
            state = "published" if _is_done(store, stage) else "missing"
            print(f"[plan] {mark} {stage:<16} ({state})")
        return

    if params.training_set is None and "classify" in chosen:
        LOG.warning("No --training-set given; skipping classify")
        chosen.remove("classify")

    run_stages(chosen, params, store, make_backend(params), runs=parse_runs(args.runs))
    print(f"[ok] pipeline complete → {store.root}")
