from dataclasses import dataclass

import numpy as np

from RNAensemble.exceptions import require


@dataclass(frozen=True)
class TriangularIndex:
    """Maps a position pair (i, j) with 1 <= i <= j <= n to an offset into a flat array.

    Rows are laid out one after the other, so for a fixed i consecutive j are
    contiguous:

    .. math::

        offset(i, j) = (i - 1) n - \\frac{(i - 1)(i - 2)}{2} + (j - i)

    Args:
        length (int): sequence length :code:`n`

    >>> idx = TriangularIndex(4)
    >>> idx.size
    10
    >>> idx(1, 1), idx(1, 4), idx(2, 2), idx(4, 4)
    (0, 3, 4, 9)
    """
    length: int

    def __post_init__(self):
        require(self.length >= 0, f"sequence length must be >= 0 but is {self.length}")

    @property
    def size(self) -> int:
        return self.length * (self.length + 1) // 2

    def offset(self, i: int, j: int) -> int:
        require(1 <= i <= j <= self.length,
                f"invalid triangular index ({i}, {j}) for length {self.length}")
        return (i - 1) * self.length - (i - 1) * (i - 2) // 2 + (j - i)

    def __call__(self, i: int, j: int) -> int:
        return self.offset(i, j)

    def row(self, i: int) -> slice:
        """Slice of the flat array holding (i, i) ... (i, n)"""
        start = self.offset(i, i)
        return slice(start, start + self.length - i + 1)


def pack_triangular(dense, index: TriangularIndex, dtype=np.float64):
    """Flat triangular copy of the upper triangle (1-based) of a dense matrix"""
    n = index.length
    flat = np.zeros(index.size, dtype=dtype)
    for i in range(1, n + 1):
        flat[index.row(i)] = dense[i, i:n + 1]
    return flat


def unpack_triangular(flat, index: TriangularIndex):
    """Dense (n + 2) x (n + 2) copy of a flat triangular array, zero outside i <= j"""
    n = index.length
    dense = np.zeros((n + 2, n + 2), dtype=np.float64)
    for i in range(1, n + 1):
        dense[i, i:n + 1] = flat[index.row(i)]
    return dense
