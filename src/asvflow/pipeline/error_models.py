# src/asvflow/pipeline/error_models.py
from __future__ import annotations

from asvflow.config.schema import Params
from asvflow.dada2.backend import InferenceBackend
from asvflow.pipeline.filtering import filtered_paths, passing_samples
from asvflow.pipeline.report import StageReport
from asvflow.samples.types import Run
from asvflow.store.artifacts import error_model_spec
from asvflow.store.checkpoint import CheckpointStore
from asvflow.utils.logger import get_logger

LOG = get_logger("errors")


def learn_run_errors(run: Run, *, params: Params, store: CheckpointStore, backend: InferenceBackend) -> StageReport:
    """One error model per strand, learned from the run's filtered reads."""
    report = StageReport("learn-errors", run.id)
    samples = passing_samples(store, run)
    if not samples:
        report.notes.append("no samples passed filtering; nothing to learn")
        return report.log()
    for idx, strand in enumerate(("F", "R")):
        fastqs = [filtered_paths(store, s)[idx] for s in samples]
        with store.publish_blob(error_model_spec(strand), run=run.id) as tmp:
            backend.learn_errors(fastqs, tmp, params)
    report.processed = len(samples)
    return report.log()
