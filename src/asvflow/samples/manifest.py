# src/asvflow/samples/manifest.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from asvflow.samples.types import Sample, SampleSet, by_name
from asvflow.store import artifacts as A
from asvflow.store.checkpoint import CheckpointStore
from asvflow.utils.logger import get_logger

LOG = get_logger("manifest")


def manifest_rows(sset: SampleSet) -> List[Dict[str, str]]:
    return [
        {
            "sample": s.name,
            "run": s.run,
            "logical": s.logical,
            "replicate": s.replicate or "",
            "forward": str(s.forward),
            "reverse": str(s.reverse),
        }
        for s in sset
    ]


def write_manifest(store: CheckpointStore, sset: SampleSet) -> Path:
    return store.publish_rows(A.SAMPLES, manifest_rows(sset))


def read_manifest(store: CheckpointStore) -> SampleSet:
    _, rows = store.read_rows(A.SAMPLES)
    LOG.debug("Loaded %d sample(s) from the manifest", len(rows))
    samples = [
        Sample(
            name=r["sample"],
            run=r["run"],
            logical=r["logical"] or r["sample"],
            forward=Path(r["forward"]),
            reverse=Path(r["reverse"]),
            replicate=r["replicate"] or None,
        )
        for r in rows
    ]
    return SampleSet(tuple(sorted(samples, key=by_name)))
