# src/asvflow/analysis/provenance.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from asvflow.errors import AttritionError
from asvflow.samples.types import SampleSet
from asvflow.store import artifacts as A
from asvflow.store.checkpoint import CheckpointStore
from asvflow.tables.seqtab import SequenceTable
from asvflow.utils.logger import get_logger

LOG = get_logger("provenance")

OK, EXCLUDED, FAILED, PENDING = "ok", "excluded", "failed", "pending"

# counter attribute -> column name in the persisted tables
COLUMNS = {
    "reads_in": "reads.in",
    "reads_out": "reads.out",
    "denoised_f_read": "denoisedF.read",
    "denoised_r_read": "denoisedR.read",
    "merged_read": "merged.read",
    "nochim_read": "nochim.read",
    "denoised_f_seq": "denoisedF.seq",
    "denoised_r_seq": "denoisedR.seq",
    "merged_seq": "merged.seq",
    "nochim_seq": "nochim.seq",
}


def fmt_count(v: Optional[int]) -> str:
    return "" if v is None else str(v)


def parse_count(v: Optional[str]) -> Optional[int]:
    if v is None or v.strip() == "":
        return None
    return int(v)


@dataclass
class ProvenanceRecord:
    """Per-sample read counters. None means the stage has not produced a value."""

    sample: str
    run: str = ""
    status: str = PENDING
    error: str = ""
    reads_in: Optional[int] = None
    reads_out: Optional[int] = None
    denoised_f_read: Optional[int] = None
    denoised_r_read: Optional[int] = None
    merged_read: Optional[int] = None
    nochim_read: Optional[int] = None
    denoised_f_seq: Optional[int] = None
    denoised_r_seq: Optional[int] = None
    merged_seq: Optional[int] = None
    nochim_seq: Optional[int] = None

    def read_chain(self) -> List[tuple]:
        denoised: Optional[int] = None
        known = [v for v in (self.denoised_f_read, self.denoised_r_read) if v is not None]
        if known:
            denoised = max(known)
        return [
            ("reads.in", self.reads_in),
            ("reads.out", self.reads_out),
            ("denoised", denoised),
            ("merged.read", self.merged_read),
            ("nochim.read", self.nochim_read),
        ]

    def check(self) -> None:
        """reads.in >= reads.out >= max(denoisedF, denoisedR) >= merged >= nochim."""
        prev_name, prev = None, None
        for name, value in self.read_chain():
            if value is None:
                continue
            if value < 0:
                raise AttritionError(f"{self.sample}: negative {name} ({value})")
            if prev is not None and value > prev:
                raise AttritionError(f"{self.sample}: {name}={value} exceeds {prev_name}={prev}")
            prev_name, prev = name, value

    def update(self, **counters: Optional[int]) -> None:
        for k, v in counters.items():
            if k not in COLUMNS:
                raise KeyError(k)
            setattr(self, k, v)
        self.check()


def _sum(values: Iterable[Optional[int]]) -> Optional[int]:
    known = [v for v in values if v is not None]
    return sum(known) if known else None


class ProvenanceTracker:
    """
    Accumulates counters per physical sample and reports them per logical sample.

    Every update re-checks the attrition chain; a violation raises AttritionError.
    """

    def __init__(self, sample_set: SampleSet):
        self.sample_set = sample_set
        self.records: Dict[str, ProvenanceRecord] = {
            s.name: ProvenanceRecord(sample=s.name, run=s.run) for s in sample_set
        }
        self._nochim: Dict[str, tuple] = {}

    def _get(self, sample: str) -> ProvenanceRecord:
        try:
            return self.records[sample]
        except KeyError:
            raise KeyError(f"unknown sample {sample!r}") from None

    # ---------------------------
    # Stage inputs
    # ---------------------------

    def record_filter(self, sample: str, reads_in: int, reads_out: int, *, status: str) -> None:
        rec = self._get(sample)
        rec.update(reads_in=reads_in, reads_out=reads_out)
        rec.status = status if status == EXCLUDED else PENDING

    def record_denoise(
        self,
        sample: str,
        *,
        status: str,
        error: str = "",
        **counters: Optional[int],
    ) -> None:
        rec = self._get(sample)
        if rec.status == EXCLUDED:
            raise AttritionError(f"{sample} was excluded at filtering but has a denoising row")
        rec.update(**counters)
        rec.status = status
        rec.error = error

    def record_chimera(self, logical: str, nochim_read: int, nochim_seq: int) -> None:
        self._nochim[logical] = (nochim_read, nochim_seq)
        self.logical_records()  # re-check the chain on the aggregated record

    # ---------------------------
    # Aggregation
    # ---------------------------

    def logical_records(self) -> List[ProvenanceRecord]:
        groups: Dict[str, List[ProvenanceRecord]] = {}
        for s in self.sample_set:
            groups.setdefault(s.logical, []).append(self.records[s.name])
        out: List[ProvenanceRecord] = []
        for logical in sorted(groups):
            members = groups[logical]
            statuses = {m.status for m in members}
            if OK in statuses:
                status = OK
            elif FAILED in statuses:
                status = FAILED
            elif statuses == {EXCLUDED}:
                status = EXCLUDED
            else:
                status = PENDING
            rec = ProvenanceRecord(
                sample=logical,
                run=members[0].run,
                status=status,
                error="; ".join(m.error for m in members if m.error),
            )
            for attr in COLUMNS:
                if attr in ("nochim_read", "nochim_seq"):
                    continue
                setattr(rec, attr, _sum(getattr(m, attr) for m in members))
            if logical in self._nochim:
                rec.nochim_read, rec.nochim_seq = self._nochim[logical]
            rec.check()
            out.append(rec)
        return out

    def check_table(self, table: SequenceTable) -> None:
        """Per-sample table totals must not exceed the merged counter."""
        merged = {r.sample: r.merged_read for r in self.logical_records()}
        for s in table.samples:
            total = table.sample_total(s)
            limit = merged.get(s)
            if limit is None:
                if total:
                    raise AttritionError(f"{s}: {total} reads in the table but no merged counter")
                continue
            if total > limit:
                raise AttritionError(f"{s}: table total {total} exceeds merged.read {limit}")

    def stats_rows(self) -> List[Dict[str, str]]:
        rows = []
        for rec in self.logical_records():
            row = {"sample": rec.sample, "status": rec.status}
            for attr, col in COLUMNS.items():
                row[col] = fmt_count(getattr(rec, attr))
            rows.append(row)
        return rows

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for rec in self.records.values():
            counts[rec.status] = counts.get(rec.status, 0) + 1
        return counts

    # ---------------------------
    # Loading from published artifacts
    # ---------------------------

    @classmethod
    def from_store(cls, store: CheckpointStore, sample_set: SampleSet) -> "ProvenanceTracker":
        tracker = cls(sample_set)
        for run in sample_set.runs:
            if store.exists(A.FILTER_STATS, run.id):
                _, rows = store.read_rows(A.FILTER_STATS, run=run.id)
                for row in rows:
                    tracker.record_filter(
                        row["sample"],
                        parse_count(row["reads.in"]) or 0,
                        parse_count(row["reads.out"]) or 0,
                        status=row["status"],
                    )
            if store.exists(A.RUN_PROVENANCE, run.id):
                _, rows = store.read_rows(A.RUN_PROVENANCE, run=run.id)
                for row in rows:
                    tracker.record_denoise(
                        row["sample"],
                        status=row["status"],
                        error=row["error"],
                        **{attr: parse_count(row[col]) for attr, col in COLUMNS.items()
                           if col in row and attr.startswith(("denoised", "merged"))},
                    )
        return tracker


def run_provenance_row(rec: ProvenanceRecord) -> Dict[str, str]:
    row = {"sample": rec.sample, "status": rec.status, "error": rec.error}
    for col in A.RUN_PROVENANCE.columns:
        attr = next((a for a, c in COLUMNS.items() if c == col), None)
        if attr:
            row[col] = fmt_count(getattr(rec, attr))
    return row

