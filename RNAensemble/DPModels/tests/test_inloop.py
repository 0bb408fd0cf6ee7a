import numpy as np
import pytest

from RNAensemble.DPModels.bundle import DPBuffers, EnsembleMatrixBundle
from RNAensemble.DPModels.inloop import InLoopProbabilityEngine
from RNAensemble.DPModels.mccaskill import McCaskillFoldingEngine
from RNAensemble.DPModels.triangular import unpack_triangular
from RNAensemble.exceptions import PreconditionError


@pytest.fixture
def in_loop(reference_bundle):
    return InLoopProbabilityEngine(reference_bundle)


def unpaired(bundle, k):
    probs = unpack_triangular(bundle.bppm_array, bundle.index)
    return 1.0 - probs[k, :].sum() - probs[:, k].sum()


@pytest.mark.parametrize("k", [1, 4, 8, 9, 14, 19, 24, 28])
def test_unpaired_decomposition(in_loop, reference_bundle, k):
    n = reference_bundle.length
    total = in_loop.prob_unpaired_external(k)
    for i in range(1, k):
        for j in range(k + 1, n + 1):
            total += in_loop.prob_unpaired_in_loop(k, i, j)
    assert total == pytest.approx(unpaired(reference_bundle, k), rel=1e-7, abs=1e-12)


@pytest.mark.slow
def test_unpaired_decomposition_all_positions(seq4test):
    bundle = McCaskillFoldingEngine(pf_scale=1.1).fold(seq4test)
    in_loop = InLoopProbabilityEngine(bundle)
    n = bundle.length
    for k in range(1, n + 1):
        total = in_loop.prob_unpaired_external(k)
        for i in range(1, k):
            for j in range(k + 1, n + 1):
                total += in_loop.prob_unpaired_in_loop(k, i, j)
        assert total == pytest.approx(unpaired(bundle, k), rel=1e-7, abs=1e-12)


def test_basepair_decomposition(in_loop, reference_bundle):
    n = reference_bundle.length
    checked = 0
    for ip in range(1, n + 1):
        for jp in range(ip + 1, n + 1):
            p = reference_bundle.bppm(ip, jp)
            total = in_loop.prob_basepair_external(ip, jp)
            for i in range(1, ip):
                for j in range(jp + 1, n + 1):
                    total += in_loop.prob_basepair_in_loop(ip, jp, i, j)
            assert total == pytest.approx(p, rel=1e-7, abs=1e-12)
            checked += p > 1e-3
    assert checked > 0


def test_inner_pairs(in_loop):
    p_ml = in_loop.prob_basepair_in_loop(5, 13, 3, 26)
    assert p_ml > 0
    # a stacked pair never forms a multiloop
    stack = in_loop.prob_basepair_in_loop(2, 27, 1, 28)
    assert stack == pytest.approx(in_loop.prob_stacked_pair(1, 28))


def test_multiloop_contribution(multiloop_seq):
    # without interior loops (5, 13) can only be enclosed by (3, 26) in a multiloop
    bundle = McCaskillFoldingEngine(max_loop=0).fold(multiloop_seq)
    in_loop = InLoopProbabilityEngine(bundle)
    assert in_loop.prob_basepair_in_loop(5, 13, 3, 26) > 0
    assert in_loop.prob_unpaired_in_loop(14, 3, 26) > 0
    k = 14
    total = in_loop.prob_unpaired_external(k)
    for i in range(1, k):
        for j in range(k + 1, bundle.length + 1):
            total += in_loop.prob_unpaired_in_loop(k, i, j)
    assert total == pytest.approx(unpaired(bundle, k), rel=1e-7, abs=1e-12)


def test_joint_probabilities_bounded(in_loop, reference_bundle):
    n = reference_bundle.length
    for i, j in [(1, 28), (3, 26), (5, 13), (15, 23)]:
        p = reference_bundle.bppm(i, j)
        for k in range(i + 1, j):
            assert in_loop.prob_unpaired_in_loop(k, i, j) <= p * (1 + 1e-9)
    for k in range(1, n + 1):
        assert 0 <= in_loop.prob_unpaired_external(k) <= 1 + 1e-9


def test_cache_is_lazy(in_loop):
    assert not in_loop.cache_built
    in_loop.prob_basepair_in_loop(5, 13, 3, 26)
    in_loop.prob_unpaired_external(4)
    assert not in_loop.cache_built
    p = in_loop.prob_unpaired_in_loop(14, 3, 26)
    assert in_loop.cache_built
    in_loop.invalidate()
    assert not in_loop.cache_built
    assert in_loop.prob_unpaired_in_loop(14, 3, 26) == p


@pytest.mark.parametrize("pf_scale", [0.7, 1.5])
def test_rescaling_keeps_in_loop_probabilities(in_loop, multiloop_seq, pf_scale):
    other = InLoopProbabilityEngine(McCaskillFoldingEngine(pf_scale=pf_scale).fold(multiloop_seq))
    assert other.prob_unpaired_in_loop(14, 3, 26) == pytest.approx(
        in_loop.prob_unpaired_in_loop(14, 3, 26), rel=1e-8
    )
    assert other.prob_basepair_in_loop(5, 13, 3, 26) == pytest.approx(
        in_loop.prob_basepair_in_loop(5, 13, 3, 26), rel=1e-8
    )
    assert other.prob_unpaired_external(4) == pytest.approx(in_loop.prob_unpaired_external(4), rel=1e-8)


def test_stacked_pair_short_span(in_loop):
    assert in_loop.prob_stacked_pair(1, 3) == 0.0


@pytest.mark.parametrize(
    "query",
    [
        lambda e: e.prob_unpaired_in_loop(5, 5, 10),
        lambda e: e.prob_unpaired_in_loop(11, 5, 10),
        lambda e: e.prob_unpaired_in_loop(6, 10, 5),
        lambda e: e.prob_basepair_in_loop(5, 10, 5, 12),
        lambda e: e.prob_basepair_in_loop(6, 13, 5, 12),
        lambda e: e.prob_basepair_external(4, 4),
        lambda e: e.prob_unpaired_external(0),
        lambda e: e.prob_unpaired_external(29),
    ]
)
def test_preconditions(in_loop, query):
    with pytest.raises(PreconditionError):
        query(in_loop)


def test_needs_partition_arrays():
    n = 4
    buffers = DPBuffers(
        length=n, ptype=np.zeros(10, dtype=np.int8), bppm=np.zeros(10), scale=np.ones(n + 2)
    )
    with pytest.raises(PreconditionError):
        InLoopProbabilityEngine(EnsembleMatrixBundle(buffers))


def test_needs_valid_bundle(multiloop_seq):
    engine = McCaskillFoldingEngine()
    bundle = engine.fold(multiloop_seq, owned=False)
    engine.free()
    with pytest.raises(PreconditionError):
        InLoopProbabilityEngine(bundle)


def test_empty_bundle():
    in_loop = InLoopProbabilityEngine(McCaskillFoldingEngine().fold(""))
    assert in_loop.length == 0
    with pytest.raises(PreconditionError):
        in_loop.prob_unpaired_external(1)
