# src/asvflow/tables/seqtab.py
from __future__ import annotations

import hashlib
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from asvflow.errors import ArtifactSchemaError, IdentityCollisionError
from asvflow.utils.logger import get_logger

LOG = get_logger("seqtab")


def normalize_sequence(seq: str) -> str:
    return seq.strip().upper()


def asv_id(seq: str) -> str:
    """Content-addressed variant identifier: MD5 hex digest of the normalized sequence."""
    return hashlib.md5(normalize_sequence(seq).encode("ascii")).hexdigest()


class SequenceTable:
    """
    Sparse (sample, variant) -> count table.

    Variants are keyed by asv_id and remembered in discovery order; samples keep the
    order they were added in. Zero counts are never stored.
    """

    def __init__(self, samples: Iterable[str] = ()):
        self._samples: List[str] = []
        self._sequences: Dict[str, str] = {}
        self._counts: Dict[str, Dict[str, int]] = {}
        for s in samples:
            self.add_sample(s)

    # ---------------------------
    # Construction
    # ---------------------------

    def add_sample(self, sample: str) -> None:
        if sample not in self._counts:
            self._samples.append(sample)
            self._counts[sample] = {}

    def add_variant(self, sequence: str) -> str:
        seq = normalize_sequence(sequence)
        vid = asv_id(seq)
        known = self._sequences.get(vid)
        if known is None:
            self._sequences[vid] = seq
        elif known != seq:
            LOG.critical("Identifier collision: %s maps to two sequences (%s..., %s...)", vid, known[:20], seq[:20])
            raise IdentityCollisionError(f"{vid} is shared by two distinct sequences")
        return vid

    def set_count(self, sample: str, vid: str, count: int) -> None:
        if count < 0:
            raise ValueError(f"negative count for {sample}/{vid}: {count}")
        if vid not in self._sequences:
            raise KeyError(vid)
        self.add_sample(sample)
        if count:
            self._counts[sample][vid] = int(count)
        else:
            self._counts[sample].pop(vid, None)

    def add_count(self, sample: str, vid: str, count: int) -> None:
        self.set_count(sample, vid, self.count(sample, vid) + int(count))

    # ---------------------------
    # Queries
    # ---------------------------

    @property
    def samples(self) -> List[str]:
        return list(self._samples)

    @property
    def variants(self) -> List[str]:
        """Variant ids in discovery order."""
        return list(self._sequences)

    def sequence(self, vid: str) -> str:
        return self._sequences[vid]

    def count(self, sample: str, vid: str) -> int:
        return self._counts.get(sample, {}).get(vid, 0)

    def cells(self) -> Iterator[Tuple[str, str, int]]:
        for sample in self._samples:
            for vid, n in self._counts[sample].items():
                yield sample, vid, n

    def sample_total(self, sample: str) -> int:
        return sum(self._counts.get(sample, {}).values())

    def sample_richness(self, sample: str) -> int:
        return len(self._counts.get(sample, {}))

    def variant_total(self, vid: str) -> int:
        return sum(c.get(vid, 0) for c in self._counts.values())

    def occurrence(self, vid: str) -> int:
        return sum(1 for c in self._counts.values() if c.get(vid, 0) > 0)

    def counts_for(self, vid: str) -> Dict[str, int]:
        return {s: self.count(s, vid) for s in self._samples}

    def without(self, vids: Iterable[str]) -> "SequenceTable":
        """Copy of the table with *vids* removed; samples are kept even if they become empty."""
        drop = set(vids)
        out = SequenceTable(self._samples)
        for vid in self.variants:
            if vid not in drop:
                out.add_variant(self._sequences[vid])
        for sample, vid, n in self.cells():
            if vid not in drop:
                out.set_count(sample, vid, n)
        return out

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SequenceTable):
            return NotImplemented
        return (
            self._samples == other._samples
            and self._sequences == other._sequences
            and list(self._sequences) == list(other._sequences)
            and self._counts == other._counts
        )

    def __repr__(self) -> str:
        return f"SequenceTable({len(self._samples)} samples x {len(self._sequences)} variants)"

    # ---------------------------
    # Row (de)serialisation for the checkpoint store
    # ---------------------------

    def to_rows(self, *, with_ids: bool = True) -> List[Dict[str, str]]:
        rows = []
        for vid in self.variants:
            row: Dict[str, str] = {}
            if with_ids:
                row["amplicon"] = vid
            row["sequence"] = self._sequences[vid]
            for s in self._samples:
                row[s] = str(self.count(s, vid))
            rows.append(row)
        return rows

    @classmethod
    def from_rows(cls, samples: Sequence[str], rows: Iterable[Mapping[str, str]]) -> "SequenceTable":
        tab = cls(samples)
        for row in rows:
            vid = tab.add_variant(row["sequence"])
            given = row.get("amplicon")
            if given and given != vid:
                raise ArtifactSchemaError(f"amplicon {given} does not match the digest of its sequence ({vid})")
            for s in samples:
                try:
                    n = int(row[s] or 0)
                except ValueError as e:
                    raise ArtifactSchemaError(f"non-integer count for {s}/{vid}: {row[s]!r}") from e
                if n:
                    tab.set_count(s, vid, n)
        return tab

    @classmethod
    def from_counts(cls, counts: Mapping[str, Mapping[str, int]], samples: Optional[Sequence[str]] = None) -> "SequenceTable":
        """Build from {sample: {sequence: count}}; variants are discovered in sample order, then by
        decreasing abundance, then by sequence."""
        order = list(samples) if samples is not None else list(counts)
        tab = cls(order)
        for s in order:
            for seq, n in sorted(counts.get(s, {}).items(), key=lambda kv: (-kv[1], kv[0])):
                vid = tab.add_variant(seq)
                tab.add_count(s, vid, n)
        return tab
