import pytest

from asvflow.errors import MergeConflictError
from asvflow.tables.merge import collapse_replicates, merge_and_collapse, merge_run_tables
from asvflow.tables.seqtab import SequenceTable, asv_id


@pytest.fixture
def run_a():
    return SequenceTable.from_counts({
        "RUN1_S1": {"ACGT": 5, "GGCC": 2},
        "RUN1_S3_A": {"ACGT": 1, "TTAA": 4},
        "RUN1_S3_B": {"ACGT": 2},
    })


@pytest.fixture
def run_b():
    return SequenceTable.from_counts({"RUN2_S2": {"ACGT": 3, "CCCC": 7}})


def test_two_runs_share_one_row_per_sequence():
    run1 = SequenceTable.from_counts({"sample1": {"ACGT": 5}})
    run2 = SequenceTable.from_counts({"sample2": {"ACGT": 3}})
    merged = merge_run_tables([("run1", run1), ("run2", run2)])
    vid = asv_id("ACGT")
    assert merged.variants == [vid]
    assert merged.count("sample1", vid) == 5
    assert merged.count("sample2", vid) == 3
    assert merged.variant_total(vid) == 8
    assert merged.occurrence(vid) == 2


def test_merge_is_commutative(run_a, run_b):
    ab = merge_run_tables([("RUN1", run_a), ("RUN2", run_b)])
    ba = merge_run_tables([("RUN2", run_b), ("RUN1", run_a)])
    assert ab == ba
    assert ab.to_rows() == ba.to_rows()


def test_merge_is_idempotent(run_a):
    once = merge_run_tables([("RUN1", run_a)])
    twice = merge_run_tables([("RUN1", run_a), ("RUN1", run_a)])
    assert once == twice


def test_missing_cells_are_zero(run_a, run_b):
    merged = merge_run_tables([("RUN1", run_a), ("RUN2", run_b)])
    assert merged.count("RUN2_S2", asv_id("GGCC")) == 0
    assert merged.count("RUN1_S1", asv_id("CCCC")) == 0
    assert merged.samples == sorted(merged.samples)


def test_conflicting_cells_are_rejected(run_a):
    other = SequenceTable.from_counts({"RUN1_S1": {"ACGT": 6}})
    with pytest.raises(MergeConflictError):
        merge_run_tables([("RUN1", run_a), ("RUNX", other)])


def test_replicate_halves_are_summed_after_union(run_a, run_b):
    logical = {"RUN1_S3_A": "RUN1_S3", "RUN1_S3_B": "RUN1_S3"}
    out = merge_and_collapse([("RUN1", run_a), ("RUN2", run_b)], logical)
    assert out.samples == ["RUN1_S1", "RUN1_S3", "RUN2_S2"]
    assert out.count("RUN1_S3", asv_id("ACGT")) == 1 + 2
    # seen in one half only
    assert out.count("RUN1_S3", asv_id("TTAA")) == 4


def test_collapse_without_mapping_is_identity(run_a):
    assert collapse_replicates(run_a, {}) == run_a
