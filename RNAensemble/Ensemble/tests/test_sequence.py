import pytest

from RNAensemble.Ensemble.sequence import Sequence, normalize_residues


def test_single_sequence():
    seq = Sequence.from_string("ggguuuccc", name="hp")
    assert len(seq) == 9
    assert seq.row_number() == 1
    assert seq.names == ["hp"]
    assert seq.row(0) == "GGGUUUCCC"
    assert seq[1] == "G"
    assert seq[9] == "C"


def test_dna_is_normalized():
    assert normalize_residues("acgt") == "ACGU"


def test_alignment_columns_and_consensus():
    seq = Sequence([("a", "GGC-A"), ("b", "GAC-U"), ("c", "GAGCU")])
    assert seq.length == 5
    assert seq.row_number() == 3
    assert seq[2] == "GAA"
    assert seq[4] == "--C"
    assert seq.consensus() == "GAC-U"


def test_unequal_rows():
    with pytest.raises(ValueError):
        Sequence([("a", "GGC"), ("b", "GG")])


def test_empty():
    seq = Sequence.from_string("")
    assert len(seq) == 0
    assert Sequence([]).consensus() == ""


def test_equality():
    assert Sequence.from_string("GGG", "x") == Sequence([("x", "ggg")])
    assert Sequence.from_string("GGG", "x") != Sequence.from_string("GGG", "y")
