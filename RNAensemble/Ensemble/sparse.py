from collections import defaultdict
from typing import Dict, Iterator, Tuple

from RNAensemble.exceptions import require


class SparseProbabilityMatrix:
    """Sparse map from a position pair (i, j), i < j, to a probability.

    Pairs that were never set have probability 0.0. Entries are indexed by row
    and by column as well, so scans over all pairs touching one position only
    visit the stored pairs of that position.

    >>> m = SparseProbabilityMatrix()
    >>> m.set(1, 4, 0.95)
    >>> m.get(1, 4), m.get(2, 3)
    (0.95, 0.0)
    """

    def __init__(self):
        self._entries: Dict[Tuple[int, int], float] = {}
        self._rows = defaultdict(dict)
        self._columns = defaultdict(dict)

    def set(self, i: int, j: int, p: float):
        require(i < j, f"sparse probability key ({i}, {j}) must satisfy i < j")
        self._entries[(i, j)] = p
        self._rows[i][j] = p
        self._columns[j][i] = p

    def get(self, i: int, j: int) -> float:
        return self._entries.get((i, j), 0.0)

    def __call__(self, i: int, j: int) -> float:
        return self.get(i, j)

    def clear(self):
        self._entries.clear()
        self._rows.clear()
        self._columns.clear()

    def row(self, i: int) -> Dict[int, float]:
        """stored entries (i, j) as mapping j -> p"""
        return self._rows.get(i, {})

    def column(self, j: int) -> Dict[int, float]:
        """stored entries (i, j) as mapping i -> p"""
        return self._columns.get(j, {})

    def copy(self):
        other = SparseProbabilityMatrix()
        for (i, j), p in self._entries.items():
            other.set(i, j, p)
        return other

    def keys(self):
        return sorted(self._entries)

    def items(self) -> Iterator[Tuple[Tuple[int, int], float]]:
        for key in sorted(self._entries):
            yield key, self._entries[key]

    def __iter__(self):
        return self.items()

    def __contains__(self, key) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other):
        if not isinstance(other, SparseProbabilityMatrix):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self):
        return f"SparseProbabilityMatrix({len(self)} entries)"
