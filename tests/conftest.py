from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest

from asvflow.config.schema import Params
from asvflow.dada2.backend import DenoisedSample, FilterResult, TaxonomyCall
from asvflow.errors import StageError
from asvflow.store.checkpoint import CheckpointStore


def write_pair(fwd_dir: Path, rev_dir: Path, name: str, size: int = 500) -> None:
    fwd_dir.mkdir(parents=True, exist_ok=True)
    rev_dir.mkdir(parents=True, exist_ok=True)
    (fwd_dir / f"{name}_R1.fastq.gz").write_bytes(b"@" * size)
    (rev_dir / f"{name}_R2.fastq.gz").write_bytes(b"@" * size)


def sample_spec(reads_in: int, reads_out: int, merged: Dict[str, int],
                fwd: Optional[Dict[str, int]] = None, rev: Optional[Dict[str, int]] = None) -> dict:
    """Fake per-sample outcome. Denoised strands default to the merged calls plus some slack."""
    extra = max(0, reads_out - sum(merged.values())) // 2
    default_fwd = {"F" + s: n for s, n in merged.items()}
    if extra:
        default_fwd["FEXTRA"] = extra
    return {
        "reads_in": reads_in,
        "reads_out": reads_out,
        "F": fwd if fwd is not None else default_fwd,
        "R": rev if rev is not None else {"R" + s: n for s, n in merged.items()},
        "merged": merged,
    }


class FakeBackend:
    """Deterministic stand-in for the R subsystem."""

    def __init__(
        self,
        samples: Dict[str, dict],
        *,
        chimeras: Iterable[str] = (),
        taxonomy: Optional[Dict[str, TaxonomyCall]] = None,
        fail: Iterable[Tuple[str, str]] = (),
        fail_chimeras: bool = False,
    ):
        self.samples = samples
        self.chimeras: Set[str] = set(chimeras)
        self.taxonomy = taxonomy or {}
        self.fail = set(fail)
        self.fail_chimeras = fail_chimeras
        self.denoise_batches: List[Tuple[str, Tuple[str, ...], str]] = []
        self.chimera_methods: List[str] = []

    def filter_and_trim(self, sample, fwd_out: Path, rev_out: Path, params: Params) -> FilterResult:
        spec = self.samples[sample.name]
        fwd_out.write_text(f"filtered {sample.name} F\n")
        rev_out.write_text(f"filtered {sample.name} R\n")
        return FilterResult(spec["reads_in"], spec["reads_out"])

    def learn_errors(self, fastqs, out: Path, params: Params) -> None:
        out.write_text("errors from " + ",".join(sorted(p.name for p in fastqs)) + "\n")

    def dereplicate(self, fastq: Path, out: Path) -> Path:
        name = out.name.rsplit(".", 2)[0]
        if ("derep", name) in self.fail:
            raise StageError(f"derepFastq failed for {name}")
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(f"derep {fastq.name}\n")
        return out

    def denoise(self, dereps, error_model: Path, out_dir: Path, *, pool: str, params: Params):
        strand = "F" if error_model.name.startswith("errors-F") else "R"
        self.denoise_batches.append((strand, tuple(dereps), pool))
        for name in dereps:
            if ("denoise", name) in self.fail:
                raise StageError(f"dada failed for {name}")
        out = {}
        for name in dereps:
            calls = self.samples[name][strand]
            out[name] = DenoisedSample(name, out_dir / f"{name}.{strand}.dada", sum(calls.values()), len(calls))
        return out

    def merge_pairs(self, fwd, fwd_derep, rev, rev_derep, *, min_overlap: int, max_mismatch: int):
        if ("merge", fwd.sample) in self.fail:
            raise StageError(f"mergePairs failed for {fwd.sample}")
        return dict(self.samples[fwd.sample]["merged"])

    def remove_bimeras(self, table, work_dir: Path, *, method: str, params: Params):
        self.chimera_methods.append(method)
        if self.fail_chimeras:
            raise StageError("removeBimeraDenovo failed")
        return {v for v in table.variants if table.sequence(v) in self.chimeras}

    def assign_taxonomy(self, sequences, work_dir: Path, *, params: Params):
        return {vid: self.taxonomy[seq] for vid, seq in sequences.items() if seq in self.taxonomy}


@pytest.fixture
def dirs(tmp_path: Path) -> Tuple[Path, Path, Path]:
    return tmp_path / "fwd", tmp_path / "rev", tmp_path / "project"


@pytest.fixture
def make_params(dirs):
    fwd, rev, project = dirs

    def _make(**kw) -> Params:
        base = dict(forward_dir=fwd, reverse_dir=rev, project_dir=project, min_reads=10,
                    min_abundance=1, min_occurrence=1)
        base.update(kw)
        return Params(**base)

    return _make


@pytest.fixture
def store(dirs) -> CheckpointStore:
    return CheckpointStore(dirs[2])
