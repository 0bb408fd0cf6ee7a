from collections import Counter
from typing import List, Tuple

GAP_SYMBOLS = "-.~"


def normalize_residues(residues: str) -> str:
    return str(residues).upper().replace("T", "U")


class Sequence:
    """A single RNA or a gapped alignment of several RNAs.

    Args:
        rows (List[Tuple[str, str]]): (name, residues) per row. All rows must
            have the same length.
    """

    def __init__(self, rows: List[Tuple[str, str]]):
        self._rows = tuple((name, normalize_residues(residues)) for name, residues in rows)
        lengths = set(len(residues) for _, residues in self._rows)
        if len(lengths) > 1:
            raise ValueError("all rows of an alignment must have the same length")
        self._length = lengths.pop() if lengths else 0

    @classmethod
    def from_string(cls, residues: str, name: str = "seq"):
        return cls([(name, residues)])

    def __len__(self) -> int:
        return self._length

    @property
    def length(self) -> int:
        return self._length

    def row_number(self) -> int:
        return len(self._rows)

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._rows]

    @property
    def rows(self):
        return self._rows

    def row(self, idx: int = 0) -> str:
        return self._rows[idx][1]

    def __getitem__(self, position: int) -> str:
        """column at 1-based position, one residue per row"""
        return "".join(residues[position - 1] for _, residues in self._rows)

    def consensus(self) -> str:
        """Column wise majority residue, first occurrence wins ties"""
        if not self._rows:
            return ""
        columns = []
        for col in zip(*(residues for _, residues in self._rows)):
            columns.append(Counter(col).most_common(1)[0][0])
        return "".join(columns)

    def __eq__(self, other):
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._rows == other._rows

    def __repr__(self):
        return f"Sequence({self.row_number()} rows, length {self._length})"
