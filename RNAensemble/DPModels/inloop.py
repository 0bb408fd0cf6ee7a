import logging
import time

import numpy as np

from RNAensemble.DPModels.bundle import EnsembleMatrixBundle
from RNAensemble.DPModels.triangular import unpack_triangular
from RNAensemble.exceptions import require

logger = logging.getLogger(__name__)


class InLoopProbabilityEngine:
    """Joint probabilities of structural contexts inside the loop of a base pair.

    All probabilities are derived from the McCaskill arrays of a single
    :class:`~RNAensemble.DPModels.bundle.EnsembleMatrixBundle`. The qm2 array
    (multiloop segments holding at least two stems) is built on the first
    query that needs it and belongs to that bundle only.

    Args:
        bundle (EnsembleMatrixBundle): bundle holding partition function arrays

    Raises:
        PreconditionError: if the bundle lacks partition function arrays
    """

    def __init__(self, bundle: EnsembleMatrixBundle):
        require(bundle.valid, "in loop probabilities need a valid bundle")
        require(bundle.length == 0 or bundle.has_partition_arrays,
                "in loop probabilities need the partition function arrays of the folding engine")
        self.bundle = bundle
        self.length = bundle.length
        self.scale = np.array(bundle.scale_array, copy=True)
        if self.length:
            self.boltzmann = bundle.boltzmann
            ml_base = self.boltzmann.ml_base
        else:
            self.boltzmann = None
            ml_base = 1.0
        self.exp_ml_base = ml_base ** np.arange(self.length + 1, dtype=np.float64) \
            * self.scale[:self.length + 1]
        self._qm2_cache = None

    @property
    def cache_built(self) -> bool:
        return self._qm2_cache is not None

    def invalidate(self):
        self._qm2_cache = None

    def build_cache(self):
        """Fills qm2 from the qb and qm arrays of the bundle.

        .. math::

            qm1(i, j) = \\sum_{l} Q^B(i, l) \\, e^{ML}_{stem}(i, l) \\, e^{ML}_{base}[j - l]

            qm2(i, j) = \\sum_{i < u \\leq j} Q^M(i, u - 1) \\, qm1(u, j)
        """
        start = time.time()
        n = self.length
        index = self.bundle.index
        qb = unpack_triangular(self.bundle.qb_array, index)
        qm = unpack_triangular(self.bundle.qm_array, index)
        ml_stems = np.zeros((n + 2, n + 2))
        for i, l in zip(*np.nonzero(qb)):
            ml_stems[i, l] = qb[i, l] * self.boltzmann.ml_stem(int(i), int(l))
        qm1 = np.zeros((n + 2, n + 2))
        qm2 = np.zeros(index.size)
        for i in range(1, n + 1):
            for j in range(i, n + 1):
                ls = np.arange(i, j + 1)
                qm1[i, j] = ml_stems[i, i:j + 1] @ self.exp_ml_base[j - ls]
        for i in range(1, n + 1):
            for j in range(i, n + 1):
                qm2[index(i, j)] = qm[i, i:j] @ qm1[i + 1:j + 1, j]
        self._qm2_cache = qm2
        logger.debug("built multiloop cache for %s bases in %.3f seconds", n, time.time() - start)

    # helpers treating empty ranges as empty segments

    def _qm(self, i, j):
        return self.bundle.qm(i, j) if i <= j else 0.0

    def _qm2(self, i, j):
        if self._qm2_cache is None:
            self.build_cache()
        return float(self._qm2_cache[self.bundle.index(i, j)]) if i <= j else 0.0

    def _outside(self, i, j):
        qb = self.bundle.qb(i, j)
        if qb == 0:
            return 0.0
        return self.bundle.bppm(i, j) / qb

    def _check_pair(self, i, j):
        require(1 <= i < j <= self.length, f"invalid base pair ({i}, {j}) for length {self.length}")

    # queries

    def prob_unpaired_external(self, k: int) -> float:
        """Probability that k is unpaired and not enclosed by any base pair"""
        require(1 <= k <= self.length, f"position {k} out of range for length {self.length}")
        b = self.bundle
        return b.prefix_sum(k - 1) * self.scale[1] * b.suffix_sum(k + 1) / b.total_partition_function

    def prob_basepair_external(self, i: int, j: int) -> float:
        """Probability that (i, j) is formed and not enclosed by any other base pair"""
        self._check_pair(i, j)
        b = self.bundle
        qb = b.qb(i, j)
        if qb == 0:
            return 0.0
        return b.prefix_sum(i - 1) * qb * self.boltzmann.ext_stem(i, j) * b.suffix_sum(j + 1) \
            / b.total_partition_function

    def prob_unpaired_in_loop(self, k: int, i: int, j: int) -> float:
        """Joint probability of base pair (i, j) and k unpaired in the loop it closes

        There is no base pair (i', j') with i < i' < k < j' < j in the counted
        structures.
        """
        self._check_pair(i, j)
        require(i < k < j, f"position {k} is not inside the base pair ({i}, {j})")
        outside = self._outside(i, j)
        if outside == 0:
            return 0.0
        b = self.bundle
        boltz = self.boltzmann
        scale = self.scale

        weight = boltz.hairpin(i, j) * scale[j - i + 1]

        # interior loops whose inner pair leaves k unpaired
        min_loop, max_loop = boltz.min_loop, boltz.max_loop
        for p in range(i + 1, min(i + max_loop + 1, j - min_loop - 2) + 1):
            u1 = p - i - 1
            min_q = max(p + min_loop + 1, j - 1 - (max_loop - u1))
            for q in range(j - 1, min_q - 1, -1):
                if p <= k <= q:
                    continue
                qb = b.qb(p, q)
                if qb > 0:
                    weight += qb * boltz.interior(i, j, p, q) * scale[u1 + (j - q - 1) + 2]

        eb = self.exp_ml_base
        multiloop = eb[k - i - 1] * self._qm2(k + 1, j - 1) \
            + self._qm(i + 1, k - 1) * self._qm(k + 1, j - 1) \
            + self._qm2(i + 1, k - 1) * eb[j - k - 1]
        weight += boltz.ml_closing(i, j) * scale[2] * eb[1] * multiloop
        return outside * weight

    def prob_basepair_in_loop(self, ip: int, jp: int, i: int, j: int) -> float:
        """Joint probability of base pair (i, j) and (ip, jp) as inner pair of its loop"""
        self._check_pair(i, j)
        require(i < ip < jp < j, f"({ip}, {jp}) is not enclosed by ({i}, {j})")
        outside = self._outside(i, j)
        if outside == 0:
            return 0.0
        b = self.bundle
        qb = b.qb(ip, jp)
        if qb == 0:
            return 0.0
        boltz = self.boltzmann
        scale = self.scale
        weight = 0.0
        if (ip - i - 1) + (j - jp - 1) <= boltz.max_loop:
            weight += boltz.interior(i, j, ip, jp) * scale[(ip - i) + (j - jp)]

        eb = self.exp_ml_base
        left_empty = eb[ip - i - 1]
        right_empty = eb[j - jp - 1]
        left = left_empty + self._qm(i + 1, ip - 1)
        right = right_empty + self._qm(jp + 1, j - 1)
        weight += boltz.ml_closing(i, j) * scale[2] * boltz.ml_stem(ip, jp) \
            * (left * right - left_empty * right_empty)
        return outside * qb * weight

    def prob_stacked_pair(self, i: int, j: int) -> float:
        """Joint probability of (i, j) and (i + 1, j - 1)"""
        if j - i < 3:
            return 0.0
        return self.prob_basepair_in_loop(i + 1, j - 1, i, j)
