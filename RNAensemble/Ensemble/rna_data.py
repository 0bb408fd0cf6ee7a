import logging
import os
from typing import Union

import numpy as np
from Bio import SeqIO

from RNAensemble import CONFIG
from RNAensemble.DPModels.folding import FoldingEngine, PFoldParams
from RNAensemble.DPModels.inloop import InLoopProbabilityEngine
from RNAensemble.DPModels.mccaskill import McCaskillFoldingEngine
from RNAensemble.DPModels.viennarna_helpers import ViennaFoldingEngine
from RNAensemble.Ensemble.formats import read_ensemble_file, write_pp
from RNAensemble.Ensemble.sequence import GAP_SYMBOLS, Sequence
from RNAensemble.Ensemble.sparse import SparseProbabilityMatrix
from RNAensemble.exceptions import EngineError, UnsupportedConfigurationError, require

logger = logging.getLogger(__name__)

DEFAULT_BPPM_THRESHOLD = 1e-5

ENGINES = {
    "vienna": ViennaFoldingEngine,
    "mccaskill": McCaskillFoldingEngine,
}


def engine_from_config(config=None) -> FoldingEngine:
    """Builds the folding engine named in the configuration"""
    if config is None:
        config = CONFIG
    name = config.get("engine", "vienna")
    if name not in ENGINES:
        raise ValueError(f"engine must be one of {list(ENGINES)} but is {name}")
    return ENGINES[name].from_config(config.get(name) or {})


class EnsembleProbabilityStore:
    """Base pair ensemble of an RNA and derived probabilities.

    Stores the sequence and the probabilities of its base pairs and of stacked
    base pairs. Probabilities are either set from a persisted ensemble or
    computed by a folding engine. If requested, the DP arrays of the folding
    engine are kept to answer "in loop" probability queries.

    Typical use cases:

    * read from file and only fold if the file did not contain probabilities

    >>> store = EnsembleProbabilityStore.from_file("example.pp")  # doctest: +SKIP
    >>> if not store.pair_probs_available():                      # doctest: +SKIP
    ...     store.compute_ensemble_probs(PFoldParams(), False)

    * always recompute probabilities and make in loop probabilities available

    >>> store = EnsembleProbabilityStore("GGGGAAACCCC", engine=McCaskillFoldingEngine())
    >>> store.compute_ensemble_probs(PFoldParams(), True)
    >>> store.in_loop_probs_available()
    True

    Args:
        sequence (Union[Sequence, str]): the RNA
        engine (FoldingEngine): engine used by :meth:`compute_ensemble_probs`.
            Defaults to the engine in the package configuration.
        threshold (float): minimal probability of base pairs kept from a
            computed base pair probability matrix
        consensus_sequence (str): consensus of an alignment
        seq_constraints (str): sequence constraint string
    """

    def __init__(
            self,
            sequence: Union[Sequence, str],
            engine: FoldingEngine = None,
            threshold: float = None,
            consensus_sequence: str = None,
            seq_constraints: str = "",
    ):
        if isinstance(sequence, str):
            sequence = Sequence.from_string(sequence)
        self.sequence = sequence
        self.engine = engine if engine is not None else engine_from_config(CONFIG)
        self.threshold = threshold if threshold is not None else CONFIG.get("threshold", DEFAULT_BPPM_THRESHOLD)
        self.consensus_sequence = consensus_sequence
        self.seq_constraints = seq_constraints
        self.arc_probs = SparseProbabilityMatrix()
        self.arc_2_probs = SparseProbabilityMatrix()
        self._pair_probs_available = False
        self._stacking_probs_available = False
        self._in_loop_probs_available = False
        self._bundle = None
        self._in_loop = None

    @classmethod
    def from_file(
            cls,
            filename: Union[str, os.PathLike],
            read_pair_probs: bool = True,
            read_stacking_probs: bool = True,
            engine: FoldingEngine = None,
            threshold: float = None,
    ):
        """Reads sequence and, if present, base pair probabilities from a file

        Supports pp, ViennaRNA dot plot postscript, clustal and fasta files.
        Pair probabilities stay unavailable for sequence only formats or if
        :code:`read_pair_probs` is False.
        """
        record = read_ensemble_file(filename)
        consensus = record.sequence.consensus() if record.sequence.row_number() > 1 else None
        store = cls(
            record.sequence,
            engine=engine,
            threshold=threshold,
            consensus_sequence=consensus,
            seq_constraints=record.seq_constraints,
        )
        if read_pair_probs and record.has_pair_probs:
            stacking = read_stacking_probs and record.has_stacking_probs
            for i, j, p, p2 in record.arcs:
                store.set_arc_prob(i, j, p)
                if stacking and p2:
                    store.set_arc_2_prob(i, j, p2)
            store.mark_pair_probs_available(stacking)
        logger.info("read %s with %s base pairs from %s", record.sequence, len(store.arc_probs), filename)
        return store

    def write_pp(self, handle):
        """Writes the ensemble in pp format to a path or an open text handle"""
        write_pp(self, handle)

    # ------------------------------------------------------------
    # lifecycle

    def pair_probs_available(self) -> bool:
        return self._pair_probs_available

    def stacking_probs_available(self) -> bool:
        return self._stacking_probs_available

    def in_loop_probs_available(self) -> bool:
        return self._in_loop_probs_available

    def mark_pair_probs_available(self, stacking: bool = False):
        self._pair_probs_available = True
        self._stacking_probs_available = stacking

    def compute_ensemble_probs(self, params: PFoldParams = None, in_loop_probs: bool = False):
        """(Re)computes the pair probabilities with the folding engine

        Either all probabilities are replaced or, if anything fails, the store
        keeps its previous state.

        Args:
            params (PFoldParams): folding parameters. Defaults to the configuration.
            in_loop_probs (bool): keep the DP arrays to make in loop probabilities available

        Raises:
            UnsupportedConfigurationError: for alignments, gapped sequences or
                engines that cannot provide in loop probabilities
            EngineError: if the engine does not expose the arrays needed for
                stacking or in loop probabilities
        """
        if params is None:
            params = PFoldParams.from_config(CONFIG.get("fold", {}))
        if self.sequence.row_number() != 1:
            raise UnsupportedConfigurationError(
                f"ensemble probabilities can only be computed for single sequences, "
                f"not for {self.sequence.row_number()} rows"
            )
        residues = self.sequence.row(0)
        if any(c in GAP_SYMBOLS for c in residues):
            raise UnsupportedConfigurationError("cannot fold a gapped sequence")
        if in_loop_probs and not self.engine.supports_in_loop_probs:
            raise UnsupportedConfigurationError(
                f"{type(self.engine).__name__} is not configured to support in loop probabilities"
            )

        # a retained bundle must outlive later calls to the engine
        bundle = self.engine.fold(residues, params, owned=in_loop_probs)
        try:
            in_loop = None
            if in_loop_probs or params.stacking:
                if bundle.length and not bundle.has_partition_arrays:
                    raise EngineError(
                        "the folding engine did not provide the partition function arrays "
                        "needed for stacking or in loop probabilities"
                    )
                in_loop = InLoopProbabilityEngine(bundle)
            arc_probs, arc_2_probs = self._threshold_bppm(bundle, in_loop if params.stacking else None)
        except BaseException:
            bundle.release()
            raise

        self.forget_in_loop_probs()
        self.arc_probs = arc_probs
        self.arc_2_probs = arc_2_probs
        self._pair_probs_available = True
        self._stacking_probs_available = params.stacking
        if in_loop_probs:
            self._bundle = bundle
            self._in_loop = in_loop
            self._in_loop_probs_available = True
        else:
            bundle.release()
        logger.info(
            "computed %s base pairs (%s stacked) for %s",
            len(arc_probs), len(arc_2_probs), self.sequence.names[0]
        )

    def _threshold_bppm(self, bundle, in_loop=None):
        arc_probs = SparseProbabilityMatrix()
        arc_2_probs = SparseProbabilityMatrix()
        bppm = bundle.bppm_array
        ptype = bundle.pair_type_array
        index = bundle.index
        for i in range(1, bundle.length + 1):
            row = index.row(i)
            probs = bppm[row]
            types = ptype[row]
            admissible = np.nonzero((types != 0) & (probs > 0) & (probs >= self.threshold))[0]
            for offset in admissible:
                j = i + int(offset)
                arc_probs.set(i, j, float(probs[offset]))
                if in_loop is not None:
                    p2 = in_loop.prob_stacked_pair(i, j)
                    if p2 > 0 and p2 >= self.threshold:
                        arc_2_probs.set(i, j, p2)
        return arc_probs, arc_2_probs

    def forget_in_loop_probs(self):
        """Releases the kept DP arrays"""
        if self._bundle is not None:
            self._bundle.release()
        self._bundle = None
        self._in_loop = None
        self._in_loop_probs_available = False

    def release(self):
        self.forget_in_loop_probs()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    # ------------------------------------------------------------
    # sequence

    def get_sequence(self) -> Sequence:
        return self.sequence

    def get_length(self) -> int:
        return self.sequence.length

    def get_seq_constraints(self) -> str:
        return self.seq_constraints

    # ------------------------------------------------------------
    # set methods

    def _check_arc(self, i, j):
        require(1 <= i < j <= self.get_length(),
                f"invalid base pair ({i}, {j}) for length {self.get_length()}")

    def set_arc_prob(self, i: int, j: int, p: float):
        """Sets the probability of base pair (i, j)"""
        self._check_arc(i, j)
        require(0.0 <= p <= 1.0, f"probability {p} of ({i}, {j}) is not in [0, 1]")
        self.arc_probs.set(i, j, p)

    def set_arc_2_prob(self, i: int, j: int, p: float):
        """Sets the joint probability of base pairs (i, j) and (i + 1, j - 1)"""
        self._check_arc(i, j)
        require(0.0 <= p <= 1.0, f"probability {p} of ({i}, {j}) is not in [0, 1]")
        self.arc_2_probs.set(i, j, p)

    # ------------------------------------------------------------
    # get methods

    def get_arc_prob(self, i: int, j: int) -> float:
        self._check_arc(i, j)
        return self.arc_probs(i, j)

    def get_arc_2_prob(self, i: int, j: int) -> float:
        """joint probability of base pairs (i, j) and (i + 1, j - 1)"""
        self._check_arc(i, j)
        return self.arc_2_probs(i, j)

    def get_arc_stack_prob(self, i: int, j: int) -> float:
        """conditional probability Pr[(i, j) | (i + 1, j - 1)]

        Requires base pair (i + 1, j - 1) to have positive probability.
        """
        self._check_arc(i, j)
        inner = self.get_arc_prob(i + 1, j - 1)
        require(inner > 0, f"base pair ({i + 1}, {j - 1}) has probability 0")
        return self.arc_2_probs(i, j) / inner

    # ------------------------------------------------------------
    # paired upstream, downstream and unpaired

    def _check_position(self, i):
        require(1 <= i <= self.get_length(), f"position {i} out of range for length {self.get_length()}")

    def prob_paired_upstream(self, i: int) -> float:
        """probability that i pairs with some j > i"""
        self._check_position(i)
        return sum(self.arc_probs.row(i).values())

    def prob_paired_downstream(self, i: int) -> float:
        """probability that i pairs with some j < i"""
        self._check_position(i)
        return sum(self.arc_probs.column(i).values())

    def prob_unpaired(self, i: int) -> float:
        return 1.0 - self.prob_paired_upstream(i) - self.prob_paired_downstream(i)

    def unpaired_probabilities(self) -> np.ndarray:
        """unpaired probabilities of all positions; entry 0 belongs to position 1"""
        n = self.get_length()
        paired = np.zeros(n + 1)
        for (i, j), p in self.arc_probs.items():
            paired[i] += p
            paired[j] += p
        return 1.0 - paired[1:]

    # ------------------------------------------------------------
    # in loop probabilities

    def _in_loop_engine(self) -> InLoopProbabilityEngine:
        require(
            self._in_loop_probs_available,
            "in loop probabilities are not available. Call compute_ensemble_probs(params, True) first"
        )
        return self._in_loop

    def prob_unpaired_external(self, k: int) -> float:
        return self._in_loop_engine().prob_unpaired_external(k)

    def prob_unpaired_in_loop(self, k: int, i: int, j: int) -> float:
        return self._in_loop_engine().prob_unpaired_in_loop(k, i, j)

    def prob_basepair_in_loop(self, ip: int, jp: int, i: int, j: int) -> float:
        return self._in_loop_engine().prob_basepair_in_loop(ip, jp, i, j)

    def prob_basepair_external(self, i: int, j: int) -> float:
        return self._in_loop_engine().prob_basepair_external(i, j)

    def __repr__(self):
        return (f"EnsembleProbabilityStore({self.sequence}, pair_probs={self._pair_probs_available}, "
                f"in_loop_probs={self._in_loop_probs_available})")


def engine_from_args(engine_name: str, md_config):
    if engine_name == "vienna":
        return ViennaFoldingEngine(md_config)
    if engine_name == "mccaskill":
        if md_config.get("noGU"):
            logger.warning("the reference engine ignores noGU")
        return McCaskillFoldingEngine(
            temperature=md_config.get("temperature", 37.0),
            min_loop=int(md_config.get("min_loop_size", 3)),
        )
    raise ValueError(f"engine must be one of {list(ENGINES)} but is {engine_name}")


def fold_fasta(fasta, outdir, engine: FoldingEngine, params: PFoldParams = None, threshold: float = None):
    """Folds every record of a fasta file and writes one pp file per record

    Args:
        fasta (str): path to the fasta file
        outdir (str): output directory. It is created if it does not exist yet
        engine (FoldingEngine): engine used for all records
        params (PFoldParams): folding parameters
        threshold (float): minimal pair probability written to the pp files

    Returns:
        List[str]: paths of the written files
    """
    os.makedirs(outdir, exist_ok=True)
    written = []
    for sr in SeqIO.parse(fasta, "fasta"):
        store = EnsembleProbabilityStore(
            Sequence.from_string(str(sr.seq), name=sr.id),
            engine=engine,
            threshold=threshold
        )
        store.compute_ensemble_probs(params, False)
        outfile = os.path.join(outdir, f"{sr.id}.pp")
        store.write_pp(outfile)
        written.append(outfile)
    logger.info("wrote %s pp files to %s", len(written), outdir)
    return written


def fold_executable_wrapper(args, md_config):
    engine = engine_from_args(args.engine, md_config)
    params = PFoldParams(noLP=args.noLP, stacking=args.stacking)
    fold_fasta(args.input, args.output, engine, params=params, threshold=args.threshold)


def unpaired_executable_wrapper(args, md_config):
    engine = engine_from_args(args.engine, md_config)
    store = EnsembleProbabilityStore.from_file(args.input, engine=engine)
    if not store.pair_probs_available():
        store.compute_ensemble_probs(PFoldParams(noLP=args.noLP), False)
    for position, p in enumerate(store.unpaired_probabilities(), 1):
        print(f"{position}\t{p:.6g}")
