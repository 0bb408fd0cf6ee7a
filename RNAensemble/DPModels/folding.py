import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from RNAensemble.DPModels.bundle import DPBuffers, EnsembleMatrixBundle

logger = logging.getLogger(__name__)


# Vienna pair type encoding; 0 marks a non complementary pair
PAIR_TYPES = {
    ("C", "G"): 1,
    ("G", "C"): 2,
    ("G", "U"): 3,
    ("U", "G"): 4,
    ("A", "U"): 5,
    ("U", "A"): 6,
}


@dataclass(frozen=True)
class PFoldParams:
    """Parameters for partition folding.

    Args:
        noLP (bool): forbid lonely pairs
        stacking (bool): compute joint probabilities of stacked pairs
    """
    noLP: bool = False
    stacking: bool = False

    @classmethod
    def from_config(cls, config):
        return cls(noLP=bool(config.get("noLP", False)), stacking=bool(config.get("stacking", False)))


class FoldingEngine(ABC):
    """Capability interface of a partition function folding engine.

    Engines keep the buffers of their last run. Every call to :meth:`fold` or
    :meth:`free` bumps :attr:`generation`, which invalidates bundles that
    borrowed the previous buffers.
    """

    supports_in_loop_probs = True

    def __init__(self):
        self.generation = 0
        self._buffers = None

    @abstractmethod
    def _compute(self, sequence: str, params: PFoldParams) -> DPBuffers:
        """Runs the partition function recursion for a single sequence."""

    def fold(self, sequence: str, params: PFoldParams = None, owned: bool = True) -> EnsembleMatrixBundle:
        """Folds a sequence and returns its DP arrays as a bundle

        Args:
            sequence (str): single RNA sequence
            params (PFoldParams): folding parameters
            owned (bool): return a bundle owning a deep copy of the arrays. If
                False the bundle borrows the engine buffers and becomes invalid with
                the next call to :meth:`fold` or :meth:`free`

        Returns:
            EnsembleMatrixBundle: snapshot of the DP arrays
        """
        if params is None:
            params = PFoldParams()
        self.free()
        logger.debug("folding sequence of length %s with %s", len(sequence), params)
        self._buffers = self._compute(sequence, params)
        return EnsembleMatrixBundle(self._buffers, owned=owned, source=self)

    def free(self):
        """Releases the engine buffers."""
        self._buffers = None
        self.generation += 1


def pair_type_table(sequence: str, min_loop: int = 0, noLP: bool = False):
    """Pair types of all position pairs as a dense (n + 2) x (n + 2) table.

    Pairs enclosing fewer than :code:`min_loop` bases get type 0. With
    :code:`noLP` a pair is dropped if neither (i+1, j-1) nor (i-1, j+1) can pair.
    Rows and columns 0 and n + 1 are padding.
    """
    n = len(sequence)
    table = [[0] * (n + 2) for _ in range(n + 2)]
    for i in range(1, n + 1):
        for j in range(i + min_loop + 1, n + 1):
            table[i][j] = PAIR_TYPES.get((sequence[i - 1], sequence[j - 1]), 0)
    if noLP:
        lonely = []
        for i in range(1, n + 1):
            for j in range(i + 1, n + 1):
                if table[i][j] and not table[i + 1][j - 1] and not table[i - 1][j + 1]:
                    lonely.append((i, j))
        for i, j in lonely:
            table[i][j] = 0
    return table
