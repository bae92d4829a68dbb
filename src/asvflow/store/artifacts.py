# src/asvflow/store/artifacts.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ArtifactSpec:
    name: str
    path: str                       # relative to the project dir; may contain {run}
    columns: Tuple[str, ...]        # required leading columns, in order
    sample_columns: bool = False    # one extra column per sample after the fixed ones
    per_run: bool = False


SAMPLES = ArtifactSpec(
    "samples", "samples.tsv",
    ("sample", "run", "logical", "replicate", "forward", "reverse"),
)
FILTER_STATS = ArtifactSpec(
    "filter-stats", "runs/{run}/filter-stats.tsv",
    ("sample", "reads.in", "reads.out", "status"),
    per_run=True,
)
ERROR_MODEL_F = ArtifactSpec("error-model-F", "runs/{run}/errors-F.rds", (), per_run=True)
ERROR_MODEL_R = ArtifactSpec("error-model-R", "runs/{run}/errors-R.rds", (), per_run=True)
RUN_PROVENANCE = ArtifactSpec(
    "provenance", "runs/{run}/provenance.tsv",
    ("sample", "denoisedF.read", "denoisedR.read", "merged.read",
     "denoisedF.seq", "denoisedR.seq", "merged.seq", "status", "error"),
    per_run=True,
)
RUN_SEQTAB = ArtifactSpec("run-seqtab", "runs/{run}/seqtab.tsv", ("sequence",), sample_columns=True, per_run=True)
SEQTAB = ArtifactSpec("seqtab", "merged/seqtab.tsv", ("amplicon", "sequence"), sample_columns=True)
SEQTAB_NOCHIM = ArtifactSpec("seqtab-nochim", "merged/seqtab.nochim.tsv", ("amplicon", "sequence"), sample_columns=True)
FINAL_STATS = ArtifactSpec(
    "stats", "stats.tsv",
    ("sample", "reads.in", "reads.out", "denoisedF.read", "denoisedR.read", "merged.read",
     "nochim.read", "denoisedF.seq", "denoisedR.seq", "merged.seq", "nochim.seq", "status"),
)
TAXONOMY = ArtifactSpec("taxonomy", "taxonomy/taxonomy.tsv", ("amplicon", "taxonomy", "rank", "identity"))
ASV_TABLE = ArtifactSpec(
    "asv-table", "asv_table.tsv",
    ("amplicon", "taxonomy", "rank", "identity", "sequence", "total", "occurrence"),
    sample_columns=True,
)


def error_model_spec(strand: str) -> ArtifactSpec:
    if strand == "F":
        return ERROR_MODEL_F
    if strand == "R":
        return ERROR_MODEL_R
    raise ValueError(f"strand must be 'F' or 'R', got {strand!r}")
