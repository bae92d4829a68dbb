from pathlib import Path

import pytest

from asvflow.analysis.provenance import (
    EXCLUDED, FAILED, OK, ProvenanceRecord, ProvenanceTracker, fmt_count, parse_count,
)
from asvflow.errors import AttritionError
from asvflow.samples.types import Sample, SampleSet
from asvflow.tables.seqtab import SequenceTable


def _sample(name, run="RUN1", logical=None, replicate=None):
    return Sample(name, run, logical or name, Path(f"{name}_R1.fastq.gz"), Path(f"{name}_R2.fastq.gz"), replicate)


@pytest.fixture
def sset():
    return SampleSet((
        _sample("RUN1_S1"),
        _sample("RUN1_S2_A", logical="RUN1_S2", replicate="A"),
        _sample("RUN1_S2_B", logical="RUN1_S2", replicate="B"),
    ))


def test_monotone_chain_is_accepted():
    rec = ProvenanceRecord("S1", reads_in=100, reads_out=80, denoised_f_read=70,
                           denoised_r_read=75, merged_read=60, nochim_read=60)
    rec.check()


@pytest.mark.parametrize("counters", [
    dict(reads_in=10, reads_out=11),
    dict(reads_in=100, reads_out=80, denoised_f_read=81),
    dict(reads_in=100, reads_out=80, denoised_r_read=50, merged_read=51),
    dict(merged_read=5, nochim_read=6),
    dict(reads_in=-1),
])
def test_attrition_violations(counters):
    with pytest.raises(AttritionError):
        ProvenanceRecord("S1", **counters).check()


def test_unset_counters_are_skipped():
    # denoising never ran: reads.out is compared straight to merged
    ProvenanceRecord("S1", reads_in=100, reads_out=50, merged_read=50).check()


def test_update_rejects_unknown_counter():
    with pytest.raises(KeyError):
        ProvenanceRecord("S1").update(bogus=1)


def test_counter_formatting():
    assert fmt_count(None) == ""
    assert fmt_count(0) == "0"
    assert parse_count("") is None
    assert parse_count("0") == 0


def test_replicate_halves_are_aggregated(sset):
    t = ProvenanceTracker(sset)
    t.record_filter("RUN1_S1", 100, 90, status="pass")
    t.record_filter("RUN1_S2_A", 50, 40, status="pass")
    t.record_filter("RUN1_S2_B", 60, 45, status="pass")
    t.record_denoise("RUN1_S1", status=OK, denoised_f_read=80, denoised_r_read=80, merged_read=70,
                     denoised_f_seq=4, denoised_r_seq=4, merged_seq=3)
    t.record_denoise("RUN1_S2_A", status=OK, denoised_f_read=30, denoised_r_read=30, merged_read=20,
                     denoised_f_seq=2, denoised_r_seq=2, merged_seq=2)
    t.record_denoise("RUN1_S2_B", status=OK, denoised_f_read=40, denoised_r_read=40, merged_read=35,
                     denoised_f_seq=3, denoised_r_seq=3, merged_seq=3)

    recs = {r.sample: r for r in t.logical_records()}
    assert sorted(recs) == ["RUN1_S1", "RUN1_S2"]
    assert recs["RUN1_S2"].reads_in == 110
    assert recs["RUN1_S2"].merged_read == 55
    assert recs["RUN1_S2"].nochim_read is None

    t.record_chimera("RUN1_S2", 50, 4)
    rows = {r["sample"]: r for r in t.stats_rows()}
    assert rows["RUN1_S2"]["nochim.read"] == "50"
    assert rows["RUN1_S1"]["nochim.read"] == ""
    assert rows["RUN1_S2"]["status"] == OK

    with pytest.raises(AttritionError):
        t.record_chimera("RUN1_S1", 71, 3)


def test_excluded_sample_cannot_be_denoised(sset):
    t = ProvenanceTracker(sset)
    t.record_filter("RUN1_S1", 100, 3, status=EXCLUDED)
    with pytest.raises(AttritionError):
        t.record_denoise("RUN1_S1", status=OK, merged_read=1)
    row = next(r for r in t.stats_rows() if r["sample"] == "RUN1_S1")
    assert row["status"] == EXCLUDED
    assert row["reads.out"] == "3"
    assert row["merged.read"] == ""


def test_failed_half_does_not_hide_ok_half(sset):
    t = ProvenanceTracker(sset)
    t.record_filter("RUN1_S2_A", 50, 40, status="pass")
    t.record_filter("RUN1_S2_B", 60, 45, status="pass")
    t.record_denoise("RUN1_S2_A", status=OK, merged_read=20)
    t.record_denoise("RUN1_S2_B", status=FAILED, error="dada failed")
    rec = next(r for r in t.logical_records() if r.sample == "RUN1_S2")
    assert rec.status == OK
    assert rec.error == "dada failed"
    assert t.summary() == {"pending": 1, OK: 1, FAILED: 1}


def test_check_table_against_merged_counter(sset):
    t = ProvenanceTracker(sset)
    t.record_filter("RUN1_S1", 100, 90, status="pass")
    t.record_denoise("RUN1_S1", status=OK, merged_read=10)
    table = SequenceTable.from_counts({"RUN1_S1": {"ACGT": 6, "GGCC": 4}})
    t.check_table(table)

    table.add_count("RUN1_S1", table.variants[0], 1)
    with pytest.raises(AttritionError):
        t.check_table(table)

    orphan = SequenceTable.from_counts({"RUN1_S2": {"ACGT": 1}})
    with pytest.raises(AttritionError):
        t.check_table(orphan)
