# src/asvflow/tables/merge.py
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from asvflow.errors import MergeConflictError
from asvflow.tables.seqtab import SequenceTable
from asvflow.utils.logger import get_logger

LOG = get_logger("merge")


def merge_run_tables(tables: Iterable[Tuple[str, SequenceTable]]) -> SequenceTable:
    """
    Union per-run tables keyed by content-addressed variant id.

    Inputs are visited in run-id order so the result does not depend on argument order.
    A cell present in several inputs must carry the same count everywhere; it is set once,
    never summed.
    """
    ordered = sorted(tables, key=lambda t: t[0])
    samples = sorted({s for _, tab in ordered for s in tab.samples})
    merged = SequenceTable(samples)
    origin: Dict[Tuple[str, str], str] = {}

    for run_id, tab in ordered:
        for vid in tab.variants:
            merged.add_variant(tab.sequence(vid))
        for sample, vid, n in tab.cells():
            key = (sample, vid)
            have = merged.count(sample, vid)
            if key in origin and have != n:
                raise MergeConflictError(
                    f"{sample}/{vid}: run {origin[key]} says {have}, run {run_id} says {n}"
                )
            origin.setdefault(key, run_id)
            merged.set_count(sample, vid, n)

    LOG.info("Merged %d table(s): %d sample(s), %d variant(s)",
             len(ordered), len(merged.samples), len(merged.variants))
    return merged


def collapse_replicates(table: SequenceTable, logical_map: Mapping[str, str]) -> SequenceTable:
    """
    Sum replicate-half columns into their logical sample and drop the halves.

    Samples absent from *logical_map* keep their own name.
    """
    groups: Dict[str, List[str]] = {}
    for s in table.samples:
        groups.setdefault(logical_map.get(s, s), []).append(s)

    out = SequenceTable(sorted(groups))
    for vid in table.variants:
        out.add_variant(table.sequence(vid))
    for logical, members in groups.items():
        if len(members) > 1:
            LOG.debug("Collapsing %s → %s", ", ".join(members), logical)
        for vid in table.variants:
            total = sum(table.count(m, vid) for m in members)
            if total:
                out.set_count(logical, vid, total)
    return out


def merge_and_collapse(
    tables: Iterable[Tuple[str, SequenceTable]],
    logical_map: Optional[Mapping[str, str]] = None,
) -> SequenceTable:
    merged = merge_run_tables(tables)
    return collapse_replicates(merged, logical_map or {})
