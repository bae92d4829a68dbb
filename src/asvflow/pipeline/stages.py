# src/asvflow/pipeline/stages.py
"""
Stage entry points. Each reads published artifacts, does its work, and publishes exactly
one stage output (per run where the stage is run-scoped).
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from asvflow.analysis.provenance import ProvenanceTracker
from asvflow.config.schema import Params
from asvflow.dada2.backend import InferenceBackend
from asvflow.errors import ArtifactSchemaError, StageError
from asvflow.pipeline.error_models import learn_run_errors
from asvflow.pipeline.filtering import filter_run, passing_samples
from asvflow.pipeline.processor import process_runs
from asvflow.pipeline.report import StageReport
from asvflow.samples.manifest import read_manifest, write_manifest
from asvflow.samples.resolve import resolve_sample_set
from asvflow.samples.types import Run, SampleSet
from asvflow.store import artifacts as A
from asvflow.store.checkpoint import CheckpointStore
from asvflow.tables.chimera import remove_chimeras
from asvflow.tables.final import build_final_table, final_rows
from asvflow.tables.merge import merge_and_collapse
from asvflow.tables.seqtab import SequenceTable
from asvflow.tables.taxonomy import annotate, annotations_from_rows, taxonomy_rows
from asvflow.utils.logger import get_logger

LOG = get_logger("stages")

STAGES = ("resolve", "filter", "learn-errors", "denoise", "merge", "remove-chimeras", "classify", "build-table")


def _select_runs(sset: SampleSet, wanted: Optional[Sequence[str]]) -> List[Run]:
    runs = sset.runs
    if not wanted:
        return runs
    known = {r.id for r in runs}
    missing = sorted(set(wanted) - known)
    if missing:
        raise StageError(f"Unknown run(s): {', '.join(missing)} (known: {', '.join(sorted(known))})")
    return [r for r in runs if r.id in set(wanted)]


def resolve_stage(params: Params, store: CheckpointStore) -> SampleSet:
    if params.forward_dir is None or params.reverse_dir is None:
        raise StageError("forward_dir and reverse_dir are required to resolve samples")
    sset = resolve_sample_set(
        params.forward_dir,
        params.reverse_dir,
        forward_suffix=params.forward_suffix,
        reverse_suffix=params.reverse_suffix,
        sample_pattern=params.sample_pattern,
        min_bytes=params.min_file_bytes,
    )
    write_manifest(store, sset)
    StageReport("resolve", processed=len(sset)).log()
    return sset


def filter_stage(params: Params, store: CheckpointStore, backend: InferenceBackend,
                 runs: Optional[Sequence[str]] = None) -> List[StageReport]:
    sset = read_manifest(store)
    return [filter_run(r, params=params, store=store, backend=backend) for r in _select_runs(sset, runs)]


def learn_errors_stage(params: Params, store: CheckpointStore, backend: InferenceBackend,
                       runs: Optional[Sequence[str]] = None) -> List[StageReport]:
    sset = read_manifest(store)
    return [learn_run_errors(r, params=params, store=store, backend=backend) for r in _select_runs(sset, runs)]


def denoise_stage(params: Params, store: CheckpointStore, backend: InferenceBackend,
                  runs: Optional[Sequence[str]] = None) -> List[StageReport]:
    sset = read_manifest(store)
    return process_runs(_select_runs(sset, runs), params=params, store=store, backend=backend)


def load_run_table(store: CheckpointStore, run: Run) -> SequenceTable:
    samples, rows = store.read_rows(A.RUN_SEQTAB, run=run.id)
    allowed = {s.name for s in passing_samples(store, run)}
    stray = sorted(set(samples) - allowed)
    if stray:
        raise ArtifactSchemaError(f"Run {run.id}: sequence table has samples not passing filtering: {stray}")
    return SequenceTable.from_rows(samples, rows)


def load_table(store: CheckpointStore, spec: A.ArtifactSpec = A.SEQTAB) -> SequenceTable:
    samples, rows = store.read_rows(spec)
    return SequenceTable.from_rows(samples, rows)


def merge_stage(params: Params, store: CheckpointStore) -> SequenceTable:
    sset = read_manifest(store)
    tables = [(r.id, load_run_table(store, r)) for r in sset.runs]
    merged = merge_and_collapse(tables, sset.logical_map)
    ProvenanceTracker.from_store(store, sset).check_table(merged)
    store.publish_rows(A.SEQTAB, merged.to_rows(), samples=merged.samples)
    StageReport("merge", processed=len(merged.samples),
                notes=[f"{len(tables)} run(s)", f"{len(merged.variants)} variant(s)"]).log()
    return merged


def chimera_stage(params: Params, store: CheckpointStore, backend: InferenceBackend) -> SequenceTable:
    sset = read_manifest(store)
    table = load_table(store, A.SEQTAB)
    result = remove_chimeras(table, backend, store.root / "work" / "chimera", params=params)

    tracker = ProvenanceTracker.from_store(store, sset)
    for sample, (reads, seqs) in result.per_sample.items():
        tracker.record_chimera(sample, reads, seqs)
    tracker.check_table(result.table)

    # the chimera-free table is published last and marks the stage as done
    store.publish_rows(A.FINAL_STATS, tracker.stats_rows())
    store.publish_rows(A.SEQTAB_NOCHIM, result.table.to_rows(), samples=result.table.samples)
    summary = tracker.summary()
    StageReport(
        "remove-chimeras",
        processed=summary.get("ok", 0),
        excluded=summary.get("excluded", 0),
        failed=summary.get("failed", 0),
        notes=[f"{len(result.removed)} chimeric variant(s) removed"],
    ).log()
    return result.table


def classify_stage(params: Params, store: CheckpointStore, backend: InferenceBackend) -> int:
    table = load_table(store, A.SEQTAB_NOCHIM)
    seqs = {vid: table.sequence(vid) for vid in table.variants}
    calls = backend.assign_taxonomy(seqs, store.root / "work" / "taxonomy", params=params)
    annotations = annotate(calls)
    store.publish_rows(A.TAXONOMY, taxonomy_rows(table.variants, annotations))
    classified = sum(1 for a in annotations.values() if a.classified)
    StageReport("classify", processed=len(seqs),
                notes=[f"{classified} classified", f"{len(seqs) - classified} unclassified"]).log()
    return classified


def table_stage(params: Params, store: CheckpointStore) -> int:
    table = load_table(store, A.SEQTAB_NOCHIM)
    annotations = {}
    if store.exists(A.TAXONOMY):
        _, rows = store.read_rows(A.TAXONOMY)
        annotations = annotations_from_rows(rows)
    else:
        LOG.warning("No taxonomy published; every variant will be unclassified")
    records = build_final_table(
        table, annotations,
        min_abundance=params.min_abundance,
        min_occurrence=params.min_occurrence,
    )
    store.publish_rows(A.ASV_TABLE, final_rows(records), samples=table.samples)
    StageReport("build-table", processed=len(records),
                excluded=len(table.variants) - len(records)).log()
    return len(records)
