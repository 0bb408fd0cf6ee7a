"""Readers and writers of persisted ensembles.

pp is the format written by :func:`write_pp`::

    fruA  GGCUAGAAUGCC...
    #C    ......xxx...
    #
    1 12 0.9812 0.9533
    2 11 0.9711

The header lists the sequence (repeated names are concatenated, several
names form an alignment) and optional sequence constraints. Every line of the
body holds a base pair :code:`i j p [p2]` where :code:`p2` is the joint
probability of (i, j) and (i + 1, j - 1), 0 if missing.
"""
import os
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from Bio import AlignIO, SeqIO

from RNAensemble.Ensemble.sequence import Sequence
from RNAensemble.exceptions import FormatError

ARC_LINE = re.compile(r"^\s*(\d+)\s+(\d+)\s+(\S+)(?:\s+(\S+))?\s*$")
UBOX_LINE = re.compile(r"^\s*(\d+)\s+(\d+)\s+(\S+)\s+ubox\s*$")


@dataclass
class PPRecord:
    """Content of a persisted ensemble file"""
    sequence: Sequence
    arcs: List[Tuple[int, int, float, Optional[float]]] = field(default_factory=list)
    seq_constraints: str = ""
    has_pair_probs: bool = False
    has_stacking_probs: bool = False


def _parse_probability(token, filename, line_number):
    try:
        p = float(token)
    except ValueError:
        raise FormatError(f"invalid probability {token!r}", filename, line_number)
    if not 0.0 <= p <= 1.0:
        raise FormatError(f"probability {p} not in [0, 1]", filename, line_number)
    return p


def _check_arc(i, j, length, filename, line_number):
    if not 1 <= i < j <= length:
        raise FormatError(f"invalid base pair ({i}, {j}) for sequence length {length}",
                          filename, line_number)


def read_pp(filename) -> PPRecord:
    rows = OrderedDict()
    constraints = []
    arcs = []
    has_stacking = False
    in_body = False
    with open(filename) as handle:
        for line_number, line in enumerate(handle, 1):
            stripped = line.strip()
            if not stripped:
                continue
            if stripped == "#":
                in_body = True
                continue
            if stripped.startswith("#C"):
                constraints.append(stripped[2:].strip())
                continue
            if stripped.startswith("#"):
                continue
            match = ARC_LINE.match(stripped)
            if match is not None and (in_body or rows):
                in_body = True
                i, j = int(match.group(1)), int(match.group(2))
                p = _parse_probability(match.group(3), filename, line_number)
                p2 = None
                if match.group(4) is not None:
                    p2 = _parse_probability(match.group(4), filename, line_number)
                    has_stacking = True
                arcs.append((i, j, p, p2))
                continue
            if in_body:
                raise FormatError(f"expected 'i j p [p2]' but found {stripped!r}", filename, line_number)
            fields = stripped.split()
            # a name without residues is the header of an empty sequence
            if len(fields) == 1:
                fields.append("")
            if len(fields) != 2:
                raise FormatError(f"expected '<name> <sequence>' but found {stripped!r}",
                                  filename, line_number)
            name, residues = fields
            rows[name] = rows.get(name, "") + residues
    if not rows:
        raise FormatError("no sequence found", filename)
    try:
        sequence = Sequence(list(rows.items()))
    except ValueError as e:
        raise FormatError(str(e), filename)
    for i, j, _, _ in arcs:
        _check_arc(i, j, sequence.length, filename, None)
    return PPRecord(
        sequence=sequence,
        arcs=arcs,
        seq_constraints="".join(constraints),
        has_pair_probs=True,
        has_stacking_probs=has_stacking,
    )


def seqname_from_filename(filename) -> str:
    """Base name without any suffix and without a trailing '_dp'

    >>> seqname_from_filename("/tmp/fruA_dp.ps")
    'fruA'
    """
    name = os.path.basename(str(filename)).split(".")[0]
    if name.endswith("_dp"):
        name = name[:-3]
    return name


def read_dotplot_ps(filename) -> PPRecord:
    """Reads the sequence and the base pair probabilities of a ViennaRNA dot plot

    ubox entries hold the square root of the pair probability.
    """
    residues = None
    arcs = []
    with open(filename) as handle:
        lines = iter(enumerate(handle, 1))
        for line_number, line in lines:
            if line.startswith("/sequence"):
                chunks = []
                for line_number, line in lines:
                    if line.strip().startswith(")"):
                        break
                    chunks.append(line.strip().rstrip("\\"))
                residues = "".join(chunks)
                continue
            match = UBOX_LINE.match(line)
            if match is not None:
                i, j = int(match.group(1)), int(match.group(2))
                try:
                    p = float(match.group(3)) ** 2
                except ValueError:
                    raise FormatError(f"invalid probability {match.group(3)!r}", filename, line_number)
                arcs.append((i, j, min(p, 1.0), None))
    if residues is None:
        raise FormatError("no /sequence definition found", filename)
    sequence = Sequence([(seqname_from_filename(filename), residues)])
    for i, j, _, _ in arcs:
        _check_arc(i, j, sequence.length, filename, None)
    return PPRecord(sequence=sequence, arcs=arcs, has_pair_probs=True)


def read_fasta(filename) -> PPRecord:
    rows = [(sr.id, str(sr.seq)) for sr in SeqIO.parse(filename, "fasta")]
    if not rows:
        raise FormatError("no fasta records found", filename)
    try:
        return PPRecord(sequence=Sequence(rows))
    except ValueError as e:
        raise FormatError(str(e), filename)


def read_clustal(filename) -> PPRecord:
    alignment = AlignIO.read(filename, "clustal")
    rows = [(sr.id, str(sr.seq)) for sr in alignment]
    return PPRecord(sequence=Sequence(rows))


def sniff_format(filename) -> str:
    """Guesses the format from the first non empty line: pp, ps, clustal or fasta"""
    with open(filename) as handle:
        for line in handle:
            if line.strip():
                break
        else:
            raise FormatError("empty file", filename)
    if line.startswith("%!PS"):
        return "ps"
    if line.startswith("CLUSTAL"):
        return "clustal"
    if line.startswith(">"):
        return "fasta"
    return "pp"


READERS = {
    "pp": read_pp,
    "ps": read_dotplot_ps,
    "clustal": read_clustal,
    "fasta": read_fasta,
}


def read_ensemble_file(filename, file_format: str = None) -> PPRecord:
    if file_format is None:
        file_format = sniff_format(filename)
    if file_format not in READERS:
        raise ValueError(f"file_format must be one of {list(READERS)} but is {file_format}")
    return READERS[file_format](filename)


def _format_probability(p):
    return f"{p:.10g}"


def write_pp(store, handle):
    """Writes a store in pp format

    Args:
        store (EnsembleProbabilityStore): store with pair probabilities
        handle: path or text handle
    """
    if isinstance(handle, (str, os.PathLike)):
        with open(handle, "w") as fh:
            return write_pp(store, fh)
    sequence = store.get_sequence()
    width = max([len(name) for name in sequence.names] + [2])
    for name, residues in sequence.rows:
        handle.write(f"{name.ljust(width)} {residues}\n")
    if store.get_seq_constraints():
        handle.write(f"{'#C'.ljust(width)} {store.get_seq_constraints()}\n")
    handle.write("\n#\n")
    for (i, j), p in store.arc_probs.items():
        if p <= 0:
            continue
        line = f"{i} {j} {_format_probability(p)}"
        p2 = store.arc_2_probs.get(i, j)
        if p2 > 0:
            line += f" {_format_probability(p2)}"
        handle.write(line + "\n")
