# src/asvflow/tables/taxonomy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from asvflow.dada2.backend import TaxonomyCall
from asvflow.errors import ArtifactSchemaError


@dataclass(frozen=True)
class TaxonomyAnnotation:
    labels: Tuple[str, ...] = ()
    ranks: Tuple[str, ...] = ()
    confidence: Optional[float] = None   # at the deepest assigned rank

    @property
    def classified(self) -> bool:
        return bool(self.labels)

    @property
    def taxonomy(self) -> str:
        return "|".join(self.labels)

    @property
    def rank(self) -> str:
        return "|".join(self.ranks)

    @property
    def identity(self) -> str:
        return "" if self.confidence is None else f"{self.confidence:.1f}"

    @classmethod
    def from_call(cls, call: TaxonomyCall) -> "TaxonomyAnnotation":
        """
        Keep the path from the first rank below the root down to the deepest assigned rank.

        IdTaxa reports 'Root' (rank 'rootrank') first and pads unassigned ranks with
        'unclassified_*'; a call assigned only at the root is unclassified.
        """
        labels, ranks, confs = list(call.labels), list(call.ranks), list(call.confidences)
        if labels and (labels[0] == "Root" or ranks[:1] == ["rootrank"]):
            labels, ranks, confs = labels[1:], ranks[1:], confs[1:]
        depth = len(labels)
        while depth and labels[depth - 1].lower().startswith("unclassified"):
            depth -= 1
        if depth == 0:
            return cls()
        conf = confs[depth - 1] if len(confs) >= depth else None
        return cls(tuple(labels[:depth]), tuple(ranks[:depth]), conf)


UNCLASSIFIED = TaxonomyAnnotation()


def annotate(calls: Mapping[str, TaxonomyCall]) -> Dict[str, TaxonomyAnnotation]:
    return {vid: TaxonomyAnnotation.from_call(c) for vid, c in calls.items()}


def taxonomy_rows(variants: Iterable[str], annotations: Mapping[str, TaxonomyAnnotation]) -> List[Dict[str, str]]:
    rows = []
    for vid in variants:
        a = annotations.get(vid, UNCLASSIFIED)
        rows.append({"amplicon": vid, "taxonomy": a.taxonomy, "rank": a.rank, "identity": a.identity})
    return rows


def annotations_from_rows(rows: Iterable[Mapping[str, str]]) -> Dict[str, TaxonomyAnnotation]:
    out: Dict[str, TaxonomyAnnotation] = {}
    for row in rows:
        labels = tuple(x for x in row["taxonomy"].split("|") if x)
        ranks = tuple(x for x in row["rank"].split("|") if x)
        try:
            conf = float(row["identity"]) if row["identity"] else None
        except ValueError as e:
            raise ArtifactSchemaError(f"bad identity for {row['amplicon']}: {row['identity']!r}") from e
        out[row["amplicon"]] = TaxonomyAnnotation(labels, ranks, conf)
    return out
