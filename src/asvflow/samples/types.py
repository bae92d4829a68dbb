# src/asvflow/samples/types.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class Sample:
    name: str
    run: str
    logical: str                # == name unless this is a replicate half
    forward: Path
    reverse: Path
    replicate: Optional[str] = None


def by_name(s: Sample) -> str:
    return s.name


@dataclass(frozen=True)
class Run:
    id: str
    samples: Tuple[Sample, ...]

    @property
    def sample_names(self) -> List[str]:
        return [s.name for s in self.samples]


@dataclass(frozen=True)
class SampleSet:
    """Ordered samples grouped by run, plus the sample -> logical sample mapping."""

    samples: Tuple[Sample, ...]

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def runs(self) -> List[Run]:
        by_run: Dict[str, List[Sample]] = {}
        for s in self.samples:
            by_run.setdefault(s.run, []).append(s)
        return [Run(rid, tuple(sorted(by_run[rid], key=by_name))) for rid in sorted(by_run)]

    def run(self, run_id: str) -> Run:
        for r in self.runs:
            if r.id == run_id:
                return r
        raise KeyError(run_id)

    @property
    def logical_map(self) -> Dict[str, str]:
        return {s.name: s.logical for s in self.samples}
