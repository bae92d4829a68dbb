# src/asvflow/pipeline/filtering.py
from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

from asvflow.analysis.provenance import EXCLUDED, ProvenanceRecord
from asvflow.config.schema import Params
from asvflow.dada2.backend import InferenceBackend
from asvflow.pipeline.report import StageReport
from asvflow.samples.types import Run, Sample
from asvflow.store import artifacts as A
from asvflow.store.checkpoint import CheckpointStore
from asvflow.utils.logger import get_logger

LOG = get_logger("filter")

PASS = "pass"


def filtered_paths(store: CheckpointStore, sample: Sample) -> Tuple[Path, Path]:
    base = store.root / "filtered" / sample.run
    return base / f"{sample.name}_F_filt.fastq.gz", base / f"{sample.name}_R_filt.fastq.gz"


def filter_run(run: Run, *, params: Params, store: CheckpointStore, backend: InferenceBackend) -> StageReport:
    """Filter and trim every sample of *run*, then gate on params.min_reads."""
    report = StageReport("filter", run.id)
    rows = []
    for s in run.samples:
        fwd_out, rev_out = filtered_paths(store, s)
        fwd_out.parent.mkdir(parents=True, exist_ok=True)
        res = backend.filter_and_trim(s, fwd_out, rev_out, params)
        ProvenanceRecord(sample=s.name, reads_in=res.reads_in, reads_out=res.reads_out).check()
        status = PASS
        if res.reads_out < params.min_reads:
            status = EXCLUDED
            report.excluded += 1
            LOG.warning("%s: %d read(s) after filtering < min_reads=%d; excluded from later stages",
                        s.name, res.reads_out, params.min_reads)
        else:
            report.processed += 1
        rows.append({
            "sample": s.name,
            "reads.in": str(res.reads_in),
            "reads.out": str(res.reads_out),
            "status": status,
        })
    store.publish_rows(A.FILTER_STATS, rows, run=run.id)
    return report.log()


def passing_samples(store: CheckpointStore, run: Run) -> List[Sample]:
    """Samples of *run* that passed the read-count gate, in sample order."""
    _, rows = store.read_rows(A.FILTER_STATS, run=run.id)
    passed = {r["sample"] for r in rows if r["status"] == PASS}
    unknown = passed - set(run.sample_names)
    if unknown:
        LOG.warning("Run %s: filter-stats lists unknown sample(s): %s", run.id, ", ".join(sorted(unknown)))
    return [s for s in run.samples if s.name in passed]
