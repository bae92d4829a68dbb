# src/asvflow/dada2/backend.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Protocol, Sequence, Set, Tuple

from asvflow.config.schema import Params
from asvflow.samples.types import Sample
from asvflow.tables.seqtab import SequenceTable


@dataclass(frozen=True)
class FilterResult:
    reads_in: int
    reads_out: int


@dataclass(frozen=True)
class DenoisedSample:
    sample: str
    handle: Path        # opaque per-sample denoising result, consumed by merge_pairs
    reads: int
    variants: int


@dataclass(frozen=True)
class TaxonomyCall:
    labels: Tuple[str, ...]
    ranks: Tuple[str, ...]
    confidences: Tuple[float, ...]


class InferenceBackend(Protocol):
    """
    The statistical subsystem, seen from the pipeline as a set of stateless calls.

    Implementations raise StageError when the underlying tool fails.
    """

    def filter_and_trim(self, sample: Sample, fwd_out: Path, rev_out: Path, params: Params) -> FilterResult: ...

    def learn_errors(self, fastqs: Sequence[Path], out: Path, params: Params) -> None: ...

    def dereplicate(self, fastq: Path, out: Path) -> Path: ...

    def denoise(
        self,
        dereps: Mapping[str, Path],
        error_model: Path,
        out_dir: Path,
        *,
        pool: str,
        params: Params,
    ) -> Dict[str, DenoisedSample]: ...

    def merge_pairs(
        self,
        fwd: DenoisedSample,
        fwd_derep: Path,
        rev: DenoisedSample,
        rev_derep: Path,
        *,
        min_overlap: int,
        max_mismatch: int,
    ) -> Dict[str, int]: ...

    def remove_bimeras(self, table: SequenceTable, work_dir: Path, *, method: str, params: Params) -> Set[str]: ...

    def assign_taxonomy(
        self,
        sequences: Mapping[str, str],
        work_dir: Path,
        *,
        params: Params,
    ) -> Dict[str, TaxonomyCall]: ...
