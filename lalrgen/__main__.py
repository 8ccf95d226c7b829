"""Command line front end: build a parse table from a grammar in a JSON file.

    python -m lalrgen grammar.json Script -k 2 --report-dir out/ --ignore WhiteSpace

The grammar file holds a list of rule descriptors (see
`Grammar.from_descriptors`). The table goes to stdout as JSON.
"""

import argparse
import json
import logging
import sys

from .generator import ParserGenerator
from .grammar import Grammar, GrammarError
from .table import AmbiguityError

main_log = logging.getLogger("lalrgen")


def load_grammar(path: str) -> Grammar:
    with open(path, "r", encoding="utf-8") as file:
        try:
            descriptors = json.load(file)
        except json.JSONDecodeError as e:
            raise GrammarError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(descriptors, list):
        raise GrammarError(f"{path} should contain a list of rules")
    return Grammar.from_descriptors(descriptors)


def main(args: list[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="lalrgen",
        description="Generate an LALR(k) parse table for a grammar with lookahead restrictions",
    )
    parser.add_argument("grammar", help="Path to a JSON file containing the rules of the grammar")
    parser.add_argument("goal", help="The name of the goal non-terminal")
    parser.add_argument(
        "-k",
        "--max-tokens",
        type=int,
        default=1,
        help="The number of lookahead tokens. Lookahead restrictions in the grammar may not "
        "be longer than this. (default: 1)",
    )
    parser.add_argument(
        "--report-dir",
        type=str,
        default=None,
        help="If given, write the intermediate results of every stage (and the conflicts) "
        "as JSON files into this directory.",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="TOKEN",
        help="A token to ignore wherever the grammar doesn't otherwise expect it. Can be "
        "given more than once.",
    )
    parser.add_argument(
        "--no-ambiguity",
        action="store_true",
        help="Fail if the grammar has any conflicts, instead of resolving them.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=0,
        help="Collect lookaheads on a pool of this many threads.",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=None,
        help="Indent the table JSON by this many spaces.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress. Give it twice for debug output.",
    )

    parsed = parser.parse_args(args)

    if parsed.verbose >= 2:
        level = logging.DEBUG
    elif parsed.verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(name)s: %(message)s")

    try:
        grammar = load_grammar(parsed.grammar)
        generator = ParserGenerator(
            grammar,
            parsed.goal,
            max_tokens=parsed.max_tokens,
            ignore_tokens=parsed.ignore,
            workers=parsed.workers,
        )
        result = generator.gen_table()
    except ValueError as e:
        main_log.error("%s", e)
        return 1

    if parsed.report_dir is not None:
        generator.write_reports(parsed.report_dir, result)

    for warning in result.warnings:
        main_log.warning("%s", warning)

    if parsed.no_ambiguity and result.conflicts:
        main_log.error("%s", AmbiguityError(result.conflicts))
        return 2
    if result.conflicts:
        main_log.warning("%d conflicts; shifts and earlier rules were kept", len(result.conflicts))

    sys.stdout.write(result.table.to_json(indent=parsed.indent))
    sys.stdout.write("\n")
    return 0


def run():
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
