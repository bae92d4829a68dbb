import pytest

from asvflow.dada2.backend import TaxonomyCall
from asvflow.tables.final import build_final_table, final_rows
from asvflow.tables.seqtab import SequenceTable, asv_id
from asvflow.tables.taxonomy import (
    UNCLASSIFIED, TaxonomyAnnotation, annotate, annotations_from_rows, taxonomy_rows,
)

RANKS = ("domain", "phylum", "class", "order", "family", "genus")


@pytest.fixture
def table():
    return SequenceTable.from_counts({
        "S1": {"AAAA": 5, "CCCC": 3, "GGGG": 1, "TTTT": 2},
        "S2": {"CCCC": 2, "TTTT": 2},
    })


def test_thresholds_are_inclusive(table):
    recs = build_final_table(table, {}, min_abundance=4, min_occurrence=2)
    # CCCC total 5 in 2 samples, TTTT total 4 in 2 samples; AAAA fails occurrence
    assert [r.sequence for r in recs] == ["CCCC", "TTTT"]
    assert [r.total for r in recs] == [5, 4]


def test_sort_is_stable_on_ties(table):
    recs = build_final_table(table, {}, min_abundance=1, min_occurrence=1)
    totals = [(r.sequence, r.total) for r in recs]
    # AAAA and CCCC tie at 5 and keep discovery order
    assert totals == [("AAAA", 5), ("CCCC", 5), ("TTTT", 4), ("GGGG", 1)]


def test_unclassified_variants_are_kept(table):
    annotations = {asv_id("AAAA"): TaxonomyAnnotation(("Bacteria",), ("domain",), 99.0)}
    recs = build_final_table(table, annotations, min_abundance=5, min_occurrence=1)
    by_seq = {r.sequence: r for r in recs}
    assert by_seq["AAAA"].taxonomy == "Bacteria"
    assert by_seq["CCCC"].taxonomy == ""
    assert by_seq["CCCC"].identity == ""


def test_final_rows_carry_sample_counts(table):
    rows = final_rows(build_final_table(table, {}, min_abundance=1, min_occurrence=1))
    top = rows[0]
    assert top["amplicon"] == asv_id("AAAA")
    assert top["S1"] == "5"
    assert top["S2"] == "0"
    assert top["occurrence"] == "1"


def test_taxonomy_is_trimmed_to_deepest_assigned_rank():
    call = TaxonomyCall(
        ("Root", "Bacteria", "Firmicutes", "Bacilli", "unclassified_Bacilli", "unclassified_Bacilli",
         "unclassified_Bacilli"),
        ("rootrank",) + RANKS,
        (100.0, 100.0, 97.25, 81.04, 40.0, 30.0, 20.0),
    )
    a = TaxonomyAnnotation.from_call(call)
    assert a.taxonomy == "Bacteria|Firmicutes|Bacilli"
    assert a.rank == "domain|phylum|class"
    assert a.identity == "81.0"


def test_call_assigned_only_at_root_is_unclassified():
    call = TaxonomyCall(("Root", "unclassified_Root"), ("rootrank", "domain"), (100.0, 31.0))
    a = TaxonomyAnnotation.from_call(call)
    assert a == UNCLASSIFIED
    assert not a.classified
    assert (a.taxonomy, a.rank, a.identity) == ("", "", "")


def test_call_without_root_label_keeps_first_rank():
    call = TaxonomyCall(("Bacteria", "unclassified_Bacteria"), ("domain", "phylum"), (92.5, 40.0))
    a = TaxonomyAnnotation.from_call(call)
    assert (a.taxonomy, a.identity) == ("Bacteria", "92.5")


def test_taxonomy_rows_round_trip():
    vid = asv_id("ACGT")
    anns = annotate({vid: TaxonomyCall(("Bacteria", "Proteobacteria"), RANKS[:2], (100.0, 88.88))})
    rows = taxonomy_rows([vid, asv_id("TTTT")], anns)
    assert rows[0]["identity"] == "88.9"
    assert rows[1] == {"amplicon": asv_id("TTTT"), "taxonomy": "", "rank": "", "identity": ""}
    back = annotations_from_rows(rows)
    assert back[vid].taxonomy == "Bacteria|Proteobacteria"
    assert not back[asv_id("TTTT")].classified
