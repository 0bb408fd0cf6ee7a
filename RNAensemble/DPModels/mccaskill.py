"""Reference McCaskill partition function engine.

Pure numpy implementation of the McCaskill recursions with a unique
multiloop decomposition (qm1) and Vienna style rescaling of all arrays.
The energy model is a simplified nearest neighbour model, good enough to
produce realistic looking ensembles for small RNAs. Use
:class:`~RNAensemble.DPModels.viennarna_helpers.ViennaFoldingEngine` for
Turner energies.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict

import numpy as np

from RNAensemble.DPModels.bundle import BoltzmannFactors, DPBuffers
from RNAensemble.DPModels.folding import FoldingEngine, PAIR_TYPES, PFoldParams, pair_type_table
from RNAensemble.DPModels.triangular import TriangularIndex, pack_triangular

logger = logging.getLogger(__name__)

GAS_CONSTANT = 0.0019872  # kcal/(mol*K)
K0 = 273.15


def _default_pair_strength():
    # per pair type, used for stacking energies
    return {1: 3.0, 2: 3.0, 3: 1.2, 4: 1.2, 5: 2.0, 6: 2.0}


@dataclass
class EnergyParameters:
    """Free energies in kcal/mol of the simplified loop model

    Args:
        pair_strength (Dict[int, float]): stacking two pairs of type a and b
            contributes :code:`-(pair_strength[a] + pair_strength[b]) / 2`
        hairpin_init (float): hairpin of minimal size
        bulge_init (float): bulge of size 1
        interior_init (float): interior loop of size 2
        loop_extension (float): logarithmic extension coefficient for loops
        asymmetry (float): penalty per unpaired base of interior loop asymmetry
        terminal_au (float): penalty for AU and GU pairs terminating a helix
        ml_closing (float): multiloop closing penalty
        ml_intern (float): penalty per multiloop stem
        ml_base (float): penalty per unpaired base in a multiloop
    """
    pair_strength: Dict[int, float] = field(default_factory=_default_pair_strength)
    hairpin_init: float = 5.4
    bulge_init: float = 3.8
    interior_init: float = 1.7
    loop_extension: float = 1.07856
    asymmetry: float = 0.6
    terminal_au: float = 0.5
    ml_closing: float = 3.4
    ml_intern: float = 0.4
    ml_base: float = 0.0


class SimpleBoltzmannFactors(BoltzmannFactors):
    def __init__(self, sequence: str, energy: EnergyParameters, temperature: float = 37.0,
                 min_loop: int = 3, max_loop: int = 30):
        self.sequence = sequence
        self.energy = energy
        self.kT = GAS_CONSTANT * (temperature + K0)
        self.min_loop = min_loop
        self.max_loop = max_loop
        self._ml_base = self._boltz(energy.ml_base)

    def _boltz(self, energy):
        return math.exp(-energy / self.kT)

    def _type(self, i, j):
        return PAIR_TYPES.get((self.sequence[i - 1], self.sequence[j - 1]), 0)

    def _terminal(self, i, j):
        return self.energy.terminal_au if self._type(i, j) > 2 else 0.0

    def hairpin(self, i, j):
        size = j - i - 1
        if size < self.min_loop:
            return 0.0
        e = self.energy.hairpin_init + self._terminal(i, j)
        if size > self.min_loop:
            e += self.energy.loop_extension * math.log(size / self.min_loop)
        return self._boltz(e)

    def interior(self, i, j, k, l):
        u1 = k - i - 1
        u2 = j - l - 1
        if u1 + u2 > self.max_loop:
            return 0.0
        p = self.energy.pair_strength
        if u1 == 0 and u2 == 0:
            e = -(p.get(self._type(i, j), 0.0) + p.get(self._type(k, l), 0.0)) / 2
        elif u1 == 0 or u2 == 0:
            u = u1 + u2
            e = self.energy.bulge_init + self.energy.loop_extension * math.log(u)
            if u > 1:
                e += self._terminal(i, j) + self._terminal(k, l)
        else:
            u = u1 + u2
            e = self.energy.interior_init + self.energy.loop_extension * math.log(u / 2)
            e += self.energy.asymmetry * abs(u1 - u2)
            e += self._terminal(i, j) + self._terminal(k, l)
        return self._boltz(e)

    def ext_stem(self, i, j):
        return self._boltz(self._terminal(i, j))

    def ml_stem(self, i, j):
        return self._boltz(self.energy.ml_intern + self._terminal(i, j))

    def ml_closing(self, i, j):
        return self._boltz(self.energy.ml_closing + self.energy.ml_intern + self._terminal(i, j))

    @property
    def ml_base(self):
        return self._ml_base


class McCaskillFoldingEngine(FoldingEngine):
    """Folding engine running the McCaskill algorithm in numpy

    Args:
        energy (EnergyParameters): loop free energies
        temperature (float): temperature in degree celsius
        pf_scale (float): per base rescale factor. All DP entries spanning
            :code:`k` bases are multiplied by :code:`pf_scale ** -k`
        min_loop (int): minimal hairpin size
        max_loop (int): maximal interior loop size

    >>> engine = McCaskillFoldingEngine()
    >>> bundle = engine.fold("GGGGAAACCCC")
    >>> bundle.bppm(1, 11) > 0.5
    True
    """

    def __init__(self, energy: EnergyParameters = None, temperature: float = 37.0,
                 pf_scale: float = None, min_loop: int = 3, max_loop: int = 30):
        super().__init__()
        self.energy = energy if energy is not None else EnergyParameters()
        self.temperature = temperature
        self.pf_scale = pf_scale if pf_scale is not None else 1.0
        self.min_loop = min_loop
        self.max_loop = max_loop

    @classmethod
    def from_config(cls, config):
        return cls(
            temperature=config.get("temperature", 37.0),
            pf_scale=config.get("pf_scale"),
            min_loop=config.get("min_loop", 3),
            max_loop=config.get("max_loop", 30),
        )

    def _compute(self, sequence: str, params: PFoldParams) -> DPBuffers:
        n = len(sequence)
        index = TriangularIndex(n)
        boltz = SimpleBoltzmannFactors(sequence, self.energy, self.temperature, self.min_loop, self.max_loop)
        ptype = pair_type_table(sequence, self.min_loop, params.noLP)
        scale = self.pf_scale ** -np.arange(n + 2, dtype=np.float64)
        exp_ml_base = boltz.ml_base ** np.arange(n + 1, dtype=np.float64) * scale[:n + 1]

        qb = np.zeros((n + 2, n + 2))
        qm = np.zeros((n + 2, n + 2))
        qm1 = np.zeros((n + 2, n + 2))
        ml_stems = np.zeros((n + 2, n + 2))
        ext_stems = np.zeros((n + 2, n + 2))

        for d in range(0, n):
            for i in range(1, n - d + 1):
                j = i + d
                if ptype[i][j]:
                    qb[i, j] = self._closed_by(i, j, boltz, ptype, qb, qm, qm1, scale)
                    if qb[i, j] > 0:
                        ml_stems[i, j] = qb[i, j] * boltz.ml_stem(i, j)
                        ext_stems[i, j] = qb[i, j] * boltz.ext_stem(i, j)
                ls = np.arange(i, j + 1)
                qm1[i, j] = ml_stems[i, i:j + 1] @ exp_ml_base[j - ls]
                qm[i, j] = (exp_ml_base[ls - i] + qm[i, ls - 1]) @ qm1[ls, j]

        q1k = np.zeros(n + 1)
        q1k[0] = 1.0
        for k in range(1, n + 1):
            ms = np.arange(1, k + 1)
            q1k[k] = q1k[k - 1] * scale[1] + q1k[ms - 1] @ ext_stems[ms, k]
        qln = np.zeros(n + 2)
        qln[n + 1] = 1.0
        for l in range(n, 0, -1):
            ms = np.arange(l, n + 1)
            qln[l] = qln[l + 1] * scale[1] + ext_stems[l, ms] @ qln[ms + 1]

        probs = self._outside(n, boltz, qb, qm, q1k, qln, ext_stems, scale, exp_ml_base)
        logger.debug("reference partition function of %s bases: %s", n, q1k[n])
        return DPBuffers(
            length=n,
            ptype=pack_triangular(np.asarray(ptype), index, dtype=np.int8),
            bppm=pack_triangular(probs, index),
            scale=scale,
            boltzmann=boltz,
            qb=pack_triangular(qb, index),
            qm=pack_triangular(qm, index),
            q1k=q1k,
            qln=qln,
        )

    def _closed_by(self, i, j, boltz, ptype, qb, qm, qm1, scale):
        qbt = boltz.hairpin(i, j) * scale[j - i + 1]
        for k in range(i + 1, min(i + self.max_loop + 1, j - self.min_loop - 1) + 1):
            u1 = k - i - 1
            min_l = max(k + self.min_loop + 1, j - 1 - (self.max_loop - u1))
            for l in range(j - 1, min_l - 1, -1):
                if ptype[k][l] and qb[k, l] > 0:
                    qbt += qb[k, l] * boltz.interior(i, j, k, l) * scale[u1 + (j - l - 1) + 2]
        if j - i - 1 > 2 * (self.min_loop + 1):
            ml = qm[i + 1, i + 1:j - 1] @ qm1[i + 2:j, j - 1]
            qbt += ml * boltz.ml_closing(i, j) * scale[2]
        return qbt

    def _outside(self, n, boltz, qb, qm, q1k, qln, ext_stems, scale, exp_ml_base):
        probs = np.zeros((n + 2, n + 2))
        if n == 0:
            return probs
        z = q1k[n]
        # outside weight of (k, l) closing a multiloop, divided by Z
        ml_outside = np.zeros((n + 2, n + 2))
        for d in range(n - 1, self.min_loop, -1):
            for i in range(1, n - d + 1):
                j = i + d
                if qb[i, j] == 0:
                    continue
                p = q1k[i - 1] * ext_stems[i, j] * qln[j + 1] / z
                for k in range(i - 1, max(0, i - self.max_loop - 2), -1):
                    u1 = i - k - 1
                    for l in range(j + 1, min(n, j + 1 + self.max_loop - u1) + 1):
                        if probs[k, l] > 0:
                            p += probs[k, l] / qb[k, l] * boltz.interior(k, l, i, j) \
                                 * scale[u1 + (l - j - 1) + 2] * qb[i, j]
                if i > 1 and j < n:
                    ks = np.arange(1, i)
                    ls = np.arange(j + 1, n + 1)
                    outer = ml_outside[1:i, j + 1:n + 1]
                    left_empty = exp_ml_base[i - ks - 1]
                    right_empty = exp_ml_base[ls - j - 1]
                    left = left_empty + qm[ks + 1, i - 1]
                    right = right_empty + qm[j + 1, ls - 1]
                    ml = left @ outer @ right - left_empty @ outer @ right_empty
                    p += ml * qb[i, j] * boltz.ml_stem(i, j)
                probs[i, j] = p
                ml_outside[i, j] = p / qb[i, j] * boltz.ml_closing(i, j) * scale[2]
        return probs
