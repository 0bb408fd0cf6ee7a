import functools
import logging
import math

import RNA
import numpy as np

from RNAensemble.DPModels.bundle import BoltzmannFactors, DPBuffers
from RNAensemble.DPModels.folding import FoldingEngine, PAIR_TYPES, PFoldParams, pair_type_table
from RNAensemble.DPModels.triangular import TriangularIndex, pack_triangular

logger = logging.getLogger(__name__)

# ViennaRNA's MAXLOOP
MAXLOOP = 30

RAW_ARRAYS = ("q1k", "qln", "qb", "qm")


def set_md_from_config(md, config):
    for key, value in config.items():
        setattr(md, key, value)


def has_dp_getters(fc):
    """True if the fold compound offers the Z, ZB and ZM getters of patched ViennaRNA builds"""
    dp_mx = getattr(fc, "exp_matrices", None)
    if dp_mx is None:
        return False
    return all(callable(getattr(dp_mx, getter, None)) for getter in ("get_Z", "get_ZB", "get_ZM"))


def has_raw_dp_arrays(fc):
    """True if the fold compound exposes the raw q1k, qln, qb and qm arrays"""
    dp_mx = getattr(fc, "exp_matrices", None)
    if dp_mx is None:
        return False
    return all(getattr(dp_mx, name, None) is not None for name in RAW_ARRAYS)


@functools.lru_cache(maxsize=None)
def dp_matrix_available():
    """Checks whether you use a ViennaRNA version that supports DP matrix access

    Returns:
        bool: True if access to DP matrix is possible false else
    """
    seq = "AATATAT"
    md = RNA.md()
    md.uniq_ML = 1
    fc = RNA.fold_compound(seq, md)
    fc.pf()
    return has_dp_getters(fc) or has_raw_dp_arrays(fc)


def row_wise_index(length):
    """ViennaRNA's iindx: entry (i, j) of a triangular array sits at iindx[i] - j"""
    return [((length + 1 - i) * (length - i)) // 2 + length + 1 for i in range(length + 2)]


class ViennaBoltzmannFactors(BoltzmannFactors):
    """Loop Boltzmann weights read from a ViennaRNA fold compound

    Multiloop stems are derived from exterior stems plus the MLintern penalty,
    which matches ViennaRNA for the dangles=0 model only. Builds without
    :code:`exp_E_ext_stem` get the exterior stem from the TerminalAU penalty.
    """

    def __init__(self, fc, sequence: str):
        self.fc = fc
        self.sequence = sequence
        self.kT = fc.exp_params.kT
        self.min_loop = fc.params.model_details.min_loop_size
        self.max_loop = MAXLOOP
        params = fc.params
        self._ml_intern = self._boltz(params.MLintern[1])
        self._ml_closing = self._boltz(params.MLclosing)
        self._ml_base = self._boltz(params.MLbase)
        self._terminal_au = self._boltz(params.TerminalAU)
        self._native_ext_stem = callable(getattr(fc, "exp_E_ext_stem", None))

    def _boltz(self, energy):
        # energies are given in dcal/mol, kT in cal/mol
        return math.exp(-energy * 10. / self.kT)

    def hairpin(self, i, j):
        if j - i - 1 < self.min_loop:
            return 0.0
        return self._boltz(self.fc.eval_hp_loop(i, j))

    def interior(self, i, j, k, l):
        if (k - i - 1) + (j - l - 1) > self.max_loop:
            return 0.0
        return self._boltz(self.fc.eval_int_loop(i, j, k, l))

    def ext_stem(self, i, j):
        if self._native_ext_stem:
            return self.fc.exp_E_ext_stem(i, j)
        pair_type = PAIR_TYPES.get((self.sequence[i - 1], self.sequence[j - 1]), 0)
        return self._terminal_au if pair_type > 2 else 1.0

    def ml_stem(self, i, j):
        return self.ext_stem(i, j) * self._ml_intern

    def ml_closing(self, i, j):
        return self._ml_closing * self.ml_stem(i, j)

    @property
    def ml_base(self):
        return self._ml_base


class ViennaFoldingEngine(FoldingEngine):
    """Folding engine delegating to the ViennaRNA package

    The fold compound of the last run is kept until the next call to
    :meth:`fold` or :meth:`free`.

    Args:
        md_config (dict): ViennaRNA model details overrides, e.g.
            :code:`{"temperature": 35}`. Defaults to dangles=0.

    >>> engine = ViennaFoldingEngine({"temperature": 37})
    >>> bundle = engine.fold("GGGCUAUUAGCUCAGUUGGUUAGAGCGCACCCCUGAUAAGGGUGAGGUCGCUGAUUCGAAUUCAGCAUAGCCCA")
    >>> bundle.length
    74
    """

    def __init__(self, md_config=None):
        super().__init__()
        self.md_config = {"dangles": 0}
        if md_config is not None:
            self.md_config.update(md_config)
        self.fc = None

    @classmethod
    def from_config(cls, config):
        return cls(md_config=config.get("md"))

    @property
    def supports_in_loop_probs(self) -> bool:
        return self.md_config.get("dangles", 2) == 0

    def model_details(self, params: PFoldParams):
        md = RNA.md()
        md.uniq_ML = 1
        set_md_from_config(md, self.md_config)
        md.noLP = int(params.noLP)
        return md

    def _compute(self, sequence: str, params: PFoldParams) -> DPBuffers:
        n = len(sequence)
        index = TriangularIndex(n)
        md = self.model_details(params)
        if n == 0:
            return DPBuffers(
                length=0, ptype=np.zeros(0, dtype=np.int8), bppm=np.zeros(0), scale=np.ones(2),
                qb=np.zeros(0), qm=np.zeros(0), q1k=np.ones(1), qln=np.ones(2)
            )
        fc = RNA.fold_compound(sequence, md)
        ss, mfe = fc.mfe()
        fc.exp_params_rescale(mfe)
        fc.pf()
        self.fc = fc

        ptype = pair_type_table(sequence, md.min_loop_size, params.noLP)
        if md.noGU:
            ptype = [[t if t not in (3, 4) else 0 for t in row] for row in ptype]
        bppm = np.asarray(fc.bpp())
        pf_scale = fc.exp_params.pf_scale
        scale = pf_scale ** -np.arange(n + 2, dtype=np.float64)
        buffers = DPBuffers(
            length=n,
            ptype=pack_triangular(np.asarray(ptype), index, dtype=np.int8),
            bppm=pack_triangular(bppm, index),
            scale=scale,
        )
        if has_dp_getters(fc):
            qb, qm, q1k, qln = self._read_getters(fc.exp_matrices, n)
        elif has_raw_dp_arrays(fc):
            qb, qm, q1k, qln = self._read_raw_arrays(fc.exp_matrices, n)
        else:
            logger.warning("ViennaRNA does not expose its DP matrices. "
                           "Only base pair probabilities are available")
            return buffers
        buffers.qb = pack_triangular(qb, index)
        buffers.qm = pack_triangular(qm, index)
        buffers.q1k = q1k
        buffers.qln = qln
        buffers.boltzmann = ViennaBoltzmannFactors(fc, sequence)
        return buffers

    @staticmethod
    def _read_getters(dp_mx, n):
        qb = np.zeros((n + 2, n + 2))
        qm = np.zeros((n + 2, n + 2))
        for i in range(1, n + 1):
            for j in range(i, n + 1):
                qb[i, j] = dp_mx.get_ZB(i, j)
                qm[i, j] = dp_mx.get_ZM(i, j)
        q1k = np.ones(n + 1)
        qln = np.ones(n + 2)
        for k in range(1, n + 1):
            q1k[k] = dp_mx.get_Z(1, k)
            qln[k] = dp_mx.get_Z(k, n)
        return qb, qm, q1k, qln

    @staticmethod
    def _read_raw_arrays(dp_mx, n):
        iindx = row_wise_index(n)
        raw_qb = dp_mx.qb
        raw_qm = dp_mx.qm
        qb = np.zeros((n + 2, n + 2))
        qm = np.zeros((n + 2, n + 2))
        for i in range(1, n + 1):
            for j in range(i, n + 1):
                qb[i, j] = raw_qb[iindx[i] - j]
                qm[i, j] = raw_qm[iindx[i] - j]
        raw_q1k = dp_mx.q1k
        raw_qln = dp_mx.qln
        q1k = np.array([1.0] + [raw_q1k[k] for k in range(1, n + 1)])
        qln = np.array([1.0] + [raw_qln[k] for k in range(1, n + 1)] + [1.0])
        return qb, qm, q1k, qln

    def free(self):
        self.fc = None
        super().free()

