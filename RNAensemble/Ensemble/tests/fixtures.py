import os

import pytest

from RNAensemble.DPModels.mccaskill import McCaskillFoldingEngine
from RNAensemble.Ensemble.rna_data import EnsembleProbabilityStore

TESTDATADIR = os.path.join(os.path.dirname(__file__), "test_data")


def _test_file(name):
    path = os.path.join(TESTDATADIR, name)
    assert os.path.exists(path)
    return path


@pytest.fixture
def pp_file():
    return _test_file("fruA.pp")


@pytest.fixture
def split_pp_file():
    return _test_file("split.pp")


@pytest.fixture
def gcgc_pp_file():
    return _test_file("gcgc.pp")


@pytest.fixture
def dotplot_file():
    return _test_file("hairpin_dp.ps")


@pytest.fixture
def clustal_file():
    return _test_file("aln.aln")


@pytest.fixture
def fasta_file():
    return _test_file("records.fa")


@pytest.fixture
def computed_store(multiloop_seq):
    store = EnsembleProbabilityStore(multiloop_seq, engine=McCaskillFoldingEngine())
    yield store
    store.release()
