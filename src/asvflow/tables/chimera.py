# src/asvflow/tables/chimera.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple

from asvflow.config.schema import Params
from asvflow.dada2.backend import InferenceBackend
from asvflow.errors import StageError
from asvflow.tables.seqtab import SequenceTable
from asvflow.utils.logger import get_logger

LOG = get_logger("chimera")


@dataclass(frozen=True)
class ChimeraResult:
    table: SequenceTable
    removed: Tuple[str, ...]                 # variant ids, discovery order
    per_sample: Dict[str, Tuple[int, int]]   # sample -> (nochim.read, nochim.seq)


def remove_chimeras(
    table: SequenceTable,
    backend: InferenceBackend,
    work_dir: Path,
    *,
    params: Params,
) -> ChimeraResult:
    """Drop variants the bimera detector flags and recompute per-sample totals and richness."""
    flagged = backend.remove_bimeras(table, work_dir, method=params.chimera_method, params=params)
    unknown = set(flagged) - set(table.variants)
    if unknown:
        raise StageError(f"bimera detector flagged {len(unknown)} variant(s) not in the table")

    removed = tuple(v for v in table.variants if v in flagged)
    filtered = table.without(removed)
    per_sample = {s: (filtered.sample_total(s), filtered.sample_richness(s)) for s in filtered.samples}

    before = sum(table.sample_total(s) for s in table.samples)
    after = sum(t for t, _ in per_sample.values())
    LOG.info(
        "Chimeras (%s): removed %d of %d variant(s); %.2f%% of reads retained",
        params.chimera_method, len(removed), len(table.variants),
        (100.0 * after / before) if before else 100.0,
    )
    return ChimeraResult(filtered, removed, per_sample)
