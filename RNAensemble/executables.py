import argparse
import logging
import sys

from RNAensemble import CONFIG
from RNAensemble.Ensemble.rna_data import (
    ENGINES,
    fold_executable_wrapper,
    unpaired_executable_wrapper
)


def fold_parser():
    parser = argparse.ArgumentParser(
        description='Computes base pair probabilities and writes them as pp files'
    )
    group1 = parser.add_argument_group("Input/Output")
    group2 = parser.add_argument_group("Folding")
    group1.add_argument(
        '--input',
        type=str,
        help="FASTA input file",
        required=True
    )
    group1.add_argument(
        '--output',
        required=True,
        type=str,
        help="Output Directory. It is created automatically "
             "if it does not exist yet. Writes one <record id>.pp file per record"
    )
    group2.add_argument(
        '--threshold',
        type=float,
        help=f"Minimal probability of written base pairs "
             f"(Default: {CONFIG['threshold']})",
        default=None
    )
    group2.add_argument(
        '--stacking',
        action="store_true",
        help="Also write joint probabilities of stacked base pairs"
    )
    add_engine_args(group2)
    return parser


def unpaired_parser():
    parser = argparse.ArgumentParser(
        description="Prints the unpaired probability of every position"
    )
    group1 = parser.add_argument_group("Input")
    group2 = parser.add_argument_group("Folding")
    group1.add_argument(
        '--input',
        type=str,
        help="pp, dot plot postscript, clustal or FASTA file. "
             "Sequences without base pair probabilities are folded",
        required=True
    )
    add_engine_args(group2)
    return parser


def add_engine_args(group):
    group.add_argument(
        '--engine',
        type=str,
        help=f"Folding engine (Default: {CONFIG['engine']})",
        default=CONFIG["engine"],
        choices=list(ENGINES)
    )
    group.add_argument(
        '--noLP',
        action="store_true",
        help="Forbid lonely base pairs"
    )
    return group


def add_md_parser(parser):
    group2 = parser.add_argument_group("ViennaRNA Model Details")
    group2.add_argument(
        '--temperature',
        type=float,
        help="Temperature for RNA secondary structure prediction (Default: 37)",
        default=37.0
    )
    group2.add_argument(
        '--min_loop_size',
        type=int,
        help="Minimum Loop size of RNA. (Default: 3)",
        default=3
    )
    group2.add_argument(
        '--noGU',
        type=int,
        help="If set to 1 prevents GU pairs (Default: 0)",
        default=0,
        choices=range(0, 2)
    )
    return parser


def md_config_from_args(args):
    md_config = {
        "temperature": args.temperature,
        "min_loop_size": args.min_loop_size,
        "noGU": args.noGU,
    }
    return md_config


class RNAensembleParser:
    def __init__(self):
        parser = argparse.ArgumentParser(
            "RNAensemble suite",
            usage="RNAensemble <command> [<args>]"
        )
        self.__object_methods = self.__get_modes()

        help_methods = ", ".join(self.__object_methods)
        help_msg = f"one of: {help_methods}"
        parser.add_argument("command", help=help_msg)
        args = parser.parse_args(sys.argv[1:2])
        if args.command not in self.__object_methods:
            print('Unrecognized command')
            parser.print_help()
            sys.exit(1)
        getattr(self, args.command)()

    def __get_modes(self):
        object_methods = []
        for method_name in dir(RNAensembleParser):
            if callable(getattr(RNAensembleParser, method_name)):
                if not method_name.startswith("_"):
                    object_methods.append(method_name)
        return object_methods

    def fold(self):
        parser = fold_parser()
        parser = add_md_parser(parser)
        args = parser.parse_args(sys.argv[2:])
        md_config = md_config_from_args(args)
        fold_executable_wrapper(args, md_config)

    def unpaired(self):
        parser = unpaired_parser()
        parser = add_md_parser(parser)
        args = parser.parse_args(sys.argv[2:])
        md_config = md_config_from_args(args)
        unpaired_executable_wrapper(args, md_config)


def main():
    logging.basicConfig(
        level=CONFIG.get("logging", {}).get("level", "INFO"),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s"
    )
    RNAensembleParser()


if __name__ == '__main__':
    main()
