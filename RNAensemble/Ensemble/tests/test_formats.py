import io

import pytest

from RNAensemble.DPModels.mccaskill import McCaskillFoldingEngine
from RNAensemble.Ensemble.formats import (
    read_clustal,
    read_dotplot_ps,
    read_ensemble_file,
    read_fasta,
    read_pp,
    seqname_from_filename,
    sniff_format,
)
from RNAensemble.Ensemble.rna_data import EnsembleProbabilityStore
from RNAensemble.exceptions import FormatError


def test_read_pp(pp_file):
    record = read_pp(pp_file)
    assert record.sequence.names == ["fruA"]
    assert record.sequence.row(0) == "GGGGAAACCCC"
    assert record.seq_constraints == "...xxx....."
    assert record.has_pair_probs
    assert record.has_stacking_probs
    assert record.arcs[0] == (1, 11, 0.8312, 0.7951)
    assert record.arcs[3] == (4, 8, 0.7504, None)


def test_read_pp_concatenates_rows(split_pp_file):
    record = read_pp(split_pp_file)
    assert record.sequence.rows == (("seqA", "GGGGAAACCCC"),)
    assert record.arcs == [(1, 4, 0.95, None)]
    assert not record.has_stacking_probs


@pytest.mark.parametrize(
    "content,line_number",
    [
        ("seq GGGGAAACCCC\n#\n1 11 1.5\n", 3),
        ("seq GGGGAAACCCC\n#\n1 11 abc\n", 3),
        ("seq GGGGAAACCCC\n#\nfoo bar\n", 3),
        ("seq GGGGAAACCCC extra\n", 1),
    ]
)
def test_malformed_pp(tmp_path, content, line_number):
    path = tmp_path / "bad.pp"
    path.write_text(content)
    with pytest.raises(FormatError) as excinfo:
        read_pp(path)
    assert excinfo.value.line_number == line_number
    assert f":{line_number}:" in str(excinfo.value)


def test_pp_pair_out_of_range(tmp_path):
    path = tmp_path / "bad.pp"
    path.write_text("seq GGGG\n#\n1 5 0.5\n")
    with pytest.raises(FormatError):
        read_pp(path)


def test_pp_without_sequence(tmp_path):
    path = tmp_path / "empty.pp"
    path.write_text("# nothing here\n#\n")
    with pytest.raises(FormatError):
        read_pp(path)


def test_read_dotplot(dotplot_file):
    record = read_dotplot_ps(dotplot_file)
    assert record.sequence.names == ["hairpin"]
    assert record.sequence.row(0) == "GGGGAAACCCC"
    assert len(record.arcs) == 3
    i, j, p, p2 = record.arcs[0]
    assert (i, j, p2) == (1, 11, None)
    assert p == pytest.approx(0.81)
    assert record.arcs[2][2] == pytest.approx(0.25)


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("/tmp/hairpin_dp.ps", "hairpin"),
        ("fruA.pp", "fruA"),
        ("x_dp.ps.gz", "x"),
        ("dp.ps", "dp"),
    ]
)
def test_seqname_from_filename(filename, expected):
    assert seqname_from_filename(filename) == expected


def test_read_clustal(clustal_file):
    record = read_clustal(clustal_file)
    assert record.sequence.row_number() == 2
    assert record.sequence.row(1) == "GGG-AAAC-CC"
    assert not record.has_pair_probs


def test_read_fasta_unequal_records(fasta_file):
    with pytest.raises(FormatError):
        read_fasta(fasta_file)


def test_read_fasta_alignment(tmp_path):
    path = tmp_path / "aln.fa"
    path.write_text(">a\nGGG-CC\n>b\nGGGACC\n")
    record = read_fasta(path)
    assert record.sequence.names == ["a", "b"]
    assert record.sequence.consensus() == "GGG-CC"


@pytest.mark.parametrize(
    "fixture,expected",
    [
        ("pp_file", "pp"),
        ("dotplot_file", "ps"),
        ("clustal_file", "clustal"),
        ("fasta_file", "fasta"),
    ]
)
def test_sniff_format(request, fixture, expected):
    assert sniff_format(request.getfixturevalue(fixture)) == expected


def test_read_ensemble_file_unknown_format(pp_file):
    with pytest.raises(ValueError):
        read_ensemble_file(pp_file, "stockholm")


def test_write_pp(pp_file):
    store = EnsembleProbabilityStore.from_file(pp_file)
    handle = io.StringIO()
    store.write_pp(handle)
    lines = handle.getvalue().splitlines()
    assert lines[0].split() == ["fruA", "GGGGAAACCCC"]
    assert lines[1].split() == ["#C", "...xxx....."]
    assert "#" in lines
    body = lines[lines.index("#") + 1:]
    assert body == ["1 11 0.8312 0.7951", "2 10 0.8821 0.8403", "3 9 0.9012", "4 8 0.7504"]


def test_pp_round_trip(computed_store, tmp_path):
    computed_store.compute_ensemble_probs(None, False)
    path = tmp_path / "roundtrip.pp"
    computed_store.write_pp(str(path))
    reloaded = EnsembleProbabilityStore.from_file(path, engine=computed_store.engine)
    assert reloaded.get_sequence() == computed_store.get_sequence()
    assert reloaded.arc_probs.keys() == computed_store.arc_probs.keys()
    for (i, j), p in computed_store.arc_probs.items():
        assert reloaded.get_arc_prob(i, j) == pytest.approx(p, rel=1e-9)
    assert reloaded.pair_probs_available()


def test_empty_sequence_round_trip(tmp_path):
    store = EnsembleProbabilityStore("", engine=McCaskillFoldingEngine())
    store.compute_ensemble_probs(None, False)
    path = tmp_path / "empty.pp"
    store.write_pp(str(path))
    reloaded = EnsembleProbabilityStore.from_file(path, engine=McCaskillFoldingEngine())
    assert reloaded.get_length() == 0
    assert reloaded.get_sequence().names == ["seq"]
    assert len(reloaded.arc_probs) == 0
    assert reloaded.pair_probs_available()


def test_pp_rows_of_different_length(tmp_path):
    path = tmp_path / "aln.pp"
    path.write_text("a GGGG\nb GGG\n#\n")
    with pytest.raises(FormatError):
        read_pp(path)
