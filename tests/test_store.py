import pytest

from asvflow.errors import ArtifactMissing, ArtifactSchemaError, CheckpointError
from asvflow.store import artifacts as A
from asvflow.store.checkpoint import CheckpointStore


def _stats_row(sample, reads_in=10, reads_out=8, status="pass"):
    return {"sample": sample, "reads.in": str(reads_in), "reads.out": str(reads_out), "status": status}


def test_publish_and_read_rows(tmp_path):
    store = CheckpointStore(tmp_path)
    path = store.publish_rows(A.FILTER_STATS, [_stats_row("S1"), _stats_row("S2")], run="RUN1")
    assert path == tmp_path / "runs" / "RUN1" / "filter-stats.tsv"
    extra, rows = store.read_rows(A.FILTER_STATS, run="RUN1")
    assert extra == []
    assert [r["sample"] for r in rows] == ["S1", "S2"]
    assert store.runs_with(A.FILTER_STATS) == ["RUN1"]


def test_per_run_artifact_requires_run(tmp_path):
    with pytest.raises(ValueError):
        CheckpointStore(tmp_path).path(A.FILTER_STATS)


def test_missing_artifact(tmp_path):
    with pytest.raises(ArtifactMissing):
        CheckpointStore(tmp_path).read_rows(A.SEQTAB)


def test_failed_publish_leaves_previous_artifact(tmp_path):
    store = CheckpointStore(tmp_path)
    store.publish_rows(A.FILTER_STATS, [_stats_row("S1")], run="RUN1")
    before = store.path(A.FILTER_STATS, "RUN1").read_bytes()

    def rows():
        yield _stats_row("S1", 99, 98)
        raise RuntimeError("stage crashed mid-write")

    with pytest.raises(RuntimeError):
        store.publish_rows(A.FILTER_STATS, rows(), run="RUN1")
    assert store.path(A.FILTER_STATS, "RUN1").read_bytes() == before
    assert [p.name for p in (tmp_path / "runs" / "RUN1").iterdir()] == ["filter-stats.tsv"]


def test_row_missing_column_is_rejected(tmp_path):
    store = CheckpointStore(tmp_path)
    with pytest.raises(ArtifactSchemaError):
        store.publish_rows(A.FILTER_STATS, [{"sample": "S1", "reads.in": "1"}], run="RUN1")
    assert not store.exists(A.FILTER_STATS, "RUN1")


def test_schema_drift_is_caught_on_read(tmp_path):
    store = CheckpointStore(tmp_path)
    p = store.path(A.TAXONOMY)
    p.parent.mkdir(parents=True)
    p.write_text("amplicon\ttaxon\trank\tidentity\n")
    with pytest.raises(ArtifactSchemaError):
        store.read_rows(A.TAXONOMY)


def test_sample_columns(tmp_path):
    store = CheckpointStore(tmp_path)
    rows = [{"amplicon": "x", "sequence": "ACGT", "S1": "1", "S2": "0"}]
    store.publish_rows(A.SEQTAB, rows, samples=["S1", "S2"])
    extra, got = store.read_rows(A.SEQTAB)
    assert extra == ["S1", "S2"]
    assert got == rows
    with pytest.raises(ArtifactSchemaError):
        store.publish_rows(A.TAXONOMY, [], samples=["S1"])


def test_republish_is_byte_identical(tmp_path):
    store = CheckpointStore(tmp_path)
    store.publish_rows(A.FILTER_STATS, [_stats_row("S1")], run="RUN1")
    first = store.path(A.FILTER_STATS, "RUN1").read_bytes()
    store.publish_rows(A.FILTER_STATS, [_stats_row("S1")], run="RUN1")
    assert store.path(A.FILTER_STATS, "RUN1").read_bytes() == first


def test_blob_publish(tmp_path):
    store = CheckpointStore(tmp_path)
    with store.publish_blob(A.ERROR_MODEL_F, run="RUN1") as tmp:
        assert not store.exists(A.ERROR_MODEL_F, "RUN1")
        tmp.write_text("model")
    assert store.path(A.ERROR_MODEL_F, "RUN1").read_text() == "model"

    with pytest.raises(CheckpointError):
        with store.publish_blob(A.ERROR_MODEL_R, run="RUN1"):
            pass
    assert not store.exists(A.ERROR_MODEL_R, "RUN1")
