import pytest

from RNAensemble.DPModels.folding import PFoldParams
from RNAensemble.DPModels.mccaskill import McCaskillFoldingEngine
from RNAensemble.DPModels.viennarna_helpers import dp_matrix_available


@pytest.fixture(scope="session")
def rna_dp_access():
    return dp_matrix_available()


@pytest.fixture(scope="session")
def seq4test():
    seq = "UUUCUCGCAAUGAUCAACGGGCAA"
    return seq


@pytest.fixture(scope="session")
def multiloop_seq():
    # two hairpins enclosed by a closing helix
    seq = "GGGAGGGAAACCCAGGGAAACCCAUCCC"
    return seq


@pytest.fixture
def reference_engine():
    return McCaskillFoldingEngine()


@pytest.fixture
def reference_bundle(reference_engine, multiloop_seq):
    bundle = reference_engine.fold(multiloop_seq, PFoldParams(), owned=True)
    yield bundle
    bundle.release()
