from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from RNAensemble.DPModels.triangular import TriangularIndex
from RNAensemble.exceptions import require


class BoltzmannFactors(ABC):
    """Loop energy terms of a folding engine as (unscaled) Boltzmann weights.

    Positions are 1-based. The weights never contain rescaling factors, these
    are applied by whoever combines them with the DP arrays.
    """
    min_loop: int = 3
    max_loop: int = 30

    @abstractmethod
    def hairpin(self, i: int, j: int) -> float:
        """weight of the hairpin loop closed by (i, j)"""

    @abstractmethod
    def interior(self, i: int, j: int, k: int, l: int) -> float:
        """weight of the stack, bulge or interior loop closed by (i, j) with inner pair (k, l)"""

    @abstractmethod
    def ext_stem(self, i: int, j: int) -> float:
        """weight of (i, j) as a stem of the exterior loop"""

    @abstractmethod
    def ml_stem(self, i: int, j: int) -> float:
        """weight of (i, j) as an inner stem of a multiloop"""

    @abstractmethod
    def ml_closing(self, i: int, j: int) -> float:
        """weight of (i, j) closing a multiloop"""

    @property
    @abstractmethod
    def ml_base(self) -> float:
        """weight of a single unpaired base in a multiloop"""


@dataclass
class DPBuffers:
    """Raw output of one folding engine run.

    Triangular arrays are flat and indexed by :class:`TriangularIndex`. The
    single position arrays are indexed directly by position:
    :code:`q1k[k] = Q(1, k)` for :code:`0 <= k <= n` with :code:`q1k[0] = 1`,
    :code:`qln[l] = Q(l, n)` for :code:`1 <= l <= n + 1` with :code:`qln[n + 1] = 1`
    and :code:`scale[k]` is the rescale factor of a segment of :code:`k` bases.
    """
    length: int
    ptype: np.ndarray
    bppm: np.ndarray
    scale: np.ndarray
    boltzmann: Optional[BoltzmannFactors] = None
    qb: Optional[np.ndarray] = None
    qm: Optional[np.ndarray] = None
    q1k: Optional[np.ndarray] = None
    qln: Optional[np.ndarray] = None

    ARRAYS = ("ptype", "bppm", "scale", "qb", "qm", "q1k", "qln")

    def copy(self):
        arrays = {
            name: np.array(getattr(self, name), copy=True)
            for name in self.ARRAYS if getattr(self, name) is not None
        }
        return replace(self, **arrays)

    def readonly_views(self):
        views = {}
        for name in self.ARRAYS:
            array = getattr(self, name)
            if array is not None:
                view = array.view()
                view.flags.writeable = False
                views[name] = view
        return replace(self, **views)


class EnsembleMatrixBundle:
    """Read only, triangular indexed access to the output of a folding engine.

    The bundle either owns a deep copy of the engine buffers or borrows them.
    A borrowed bundle stays valid only as long as the engine that produced it
    does not fold again or free its buffers; any access after that raises a
    :class:`~RNAensemble.exceptions.PreconditionError`.

    Args:
        buffers (DPBuffers): engine output
        owned (bool): deep copy the buffers if True, keep references otherwise
        source (FoldingEngine): the producing engine. Required for borrowed bundles.
    """

    def __init__(self, buffers: DPBuffers, owned: bool = True, source=None):
        require(owned or source is not None, "a borrowed bundle needs the engine that produced it")
        self.length = buffers.length
        self.index = TriangularIndex(self.length)
        require(
            buffers.ptype.shape[0] == self.index.size and buffers.bppm.shape[0] == self.index.size,
            "triangular arrays do not match the sequence length"
        )
        self.owned = owned
        self._source = source
        self._generation = getattr(source, "generation", None)
        if owned:
            buffers = buffers.copy()
        self._buffers = buffers.readonly_views()
        self._released = False

    def __repr__(self):
        mode = "owned" if self.owned else "borrowed"
        return f"EnsembleMatrixBundle(length={self.length}, {mode}, valid={self.valid})"

    @property
    def valid(self) -> bool:
        if self._released:
            return False
        if not self.owned:
            return self._source.generation == self._generation
        return True

    def _check_valid(self):
        require(not self._released, "the bundle has been released")
        require(
            self.owned or self._source.generation == self._generation,
            "borrowed bundle used after its folding engine recomputed or freed its buffers"
        )

    @property
    def has_partition_arrays(self) -> bool:
        b = self._buffers
        if b is None:
            return False
        if any(x is None for x in (b.qb, b.qm, b.q1k, b.qln)):
            return False
        # there is no loop to weight in an empty sequence
        return b.boltzmann is not None or self.length == 0

    def _partition_arrays(self):
        self._check_valid()
        require(self.has_partition_arrays,
                "the folding engine did not provide partition function arrays")
        return self._buffers

    def release(self):
        """Frees owned arrays. Borrowed arrays are left to their engine."""
        self._buffers = None
        self._source = None
        self._released = True

    # triangular accessors

    def pair_type(self, i: int, j: int) -> int:
        self._check_valid()
        return int(self._buffers.ptype[self.index(i, j)])

    def bppm(self, i: int, j: int) -> float:
        self._check_valid()
        return float(self._buffers.bppm[self.index(i, j)])

    def qb(self, i: int, j: int) -> float:
        return float(self._partition_arrays().qb[self.index(i, j)])

    def qm(self, i: int, j: int) -> float:
        return float(self._partition_arrays().qm[self.index(i, j)])

    # single position accessors

    def prefix_sum(self, k: int) -> float:
        """Q(1, k); :code:`prefix_sum(0)` is the empty prefix"""
        require(0 <= k <= self.length, f"prefix position {k} out of range for length {self.length}")
        return float(self._partition_arrays().q1k[k])

    def suffix_sum(self, k: int) -> float:
        """Q(k, n); :code:`suffix_sum(n + 1)` is the empty suffix"""
        require(1 <= k <= self.length + 1, f"suffix position {k} out of range for length {self.length}")
        return float(self._partition_arrays().qln[k])

    def scale(self, k: int) -> float:
        """rescale factor of a segment spanning k bases"""
        self._check_valid()
        require(0 <= k <= self.length + 1, f"scale index {k} out of range for length {self.length}")
        return float(self._buffers.scale[k])

    @property
    def total_partition_function(self) -> float:
        return self.prefix_sum(self.length)

    @property
    def boltzmann(self) -> BoltzmannFactors:
        return self._partition_arrays().boltzmann

    # whole array views used for sweeps

    @property
    def bppm_array(self) -> np.ndarray:
        self._check_valid()
        return self._buffers.bppm

    @property
    def pair_type_array(self) -> np.ndarray:
        self._check_valid()
        return self._buffers.ptype

    @property
    def qb_array(self) -> np.ndarray:
        return self._partition_arrays().qb

    @property
    def qm_array(self) -> np.ndarray:
        return self._partition_arrays().qm

    @property
    def scale_array(self) -> np.ndarray:
        self._check_valid()
        return self._buffers.scale
