# src/asvflow/tables/final.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from asvflow.tables.seqtab import SequenceTable
from asvflow.tables.taxonomy import UNCLASSIFIED, TaxonomyAnnotation
from asvflow.utils.logger import get_logger

LOG = get_logger("final")


@dataclass(frozen=True)
class FinalASVRecord:
    amplicon: str
    taxonomy: str
    rank: str
    identity: str
    sequence: str
    total: int
    occurrence: int
    counts: Tuple[Tuple[str, int], ...]

    def to_row(self) -> Dict[str, str]:
        row = {
            "amplicon": self.amplicon,
            "taxonomy": self.taxonomy,
            "rank": self.rank,
            "identity": self.identity,
            "sequence": self.sequence,
            "total": str(self.total),
            "occurrence": str(self.occurrence),
        }
        row.update({s: str(n) for s, n in self.counts})
        return row


def build_final_table(
    table: SequenceTable,
    annotations: Mapping[str, TaxonomyAnnotation],
    *,
    min_abundance: int,
    min_occurrence: int,
) -> List[FinalASVRecord]:
    """
    Join taxonomy onto the table, keep variants with total >= min_abundance and
    occurrence >= min_occurrence, sort by total (descending, stable over discovery order).
    """
    records: List[FinalASVRecord] = []
    dropped = 0
    for vid in table.variants:
        total = table.variant_total(vid)
        occ = table.occurrence(vid)
        if total < min_abundance or occ < min_occurrence:
            dropped += 1
            continue
        a = annotations.get(vid, UNCLASSIFIED)
        records.append(FinalASVRecord(
            amplicon=vid,
            taxonomy=a.taxonomy,
            rank=a.rank,
            identity=a.identity,
            sequence=table.sequence(vid),
            total=total,
            occurrence=occ,
            counts=tuple(table.counts_for(vid).items()),
        ))
    records.sort(key=lambda r: -r.total)
    unclassified = sum(1 for r in records if not r.taxonomy)
    LOG.info("Final table: kept %d variant(s), dropped %d below thresholds (abundance>=%d, occurrence>=%d); %d unclassified",
             len(records), dropped, min_abundance, min_occurrence, unclassified)
    return records


def final_rows(records: Sequence[FinalASVRecord]) -> List[Dict[str, str]]:
    return [r.to_row() for r in records]
