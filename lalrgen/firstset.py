"""FIRST sets, k tokens deep.

FIRST(A) here is the set of phrases of at most k tokens that a derivation of
A can start with. If A can derive nothing at all, the empty phrase is in the
set; if A can only derive short strings, the phrases are short too.

For example, with k = 2 and the grammar

    S -> A b
    A -> a
    A ->

FIRST(A) is [(), a] and FIRST(S) is [a b, b]: the FIRST sets of the terms
of each rule, concatenated left to right, every result chopped back down to
two tokens.

Like every other parser generator we just iterate to a fixed point: keep
recomputing every rule from the current table until a whole pass goes by
with no changes. Every concatenation is truncated to k tokens, so the sets
are drawn from a finite universe, only ever grow, and the loop has to stop.
"""

import dataclasses
import logging
import typing

from .grammar import (
    DisallowTerm,
    EmptyTerm,
    Grammar,
    GrammarError,
    LookaheadTerm,
    NonTerminal,
    NonTerminalTerm,
    Rule,
    Term,
    TokenTerm,
)
from .phrase import EPSILON, Phrase, PhraseSet

first_log = logging.getLogger("lalrgen.firstset")


@dataclasses.dataclass(frozen=True)
class FirstSet:
    max_tokens: int
    table: dict[NonTerminal, PhraseSet]

    @classmethod
    def from_grammar(cls, grammar: Grammar, max_tokens: int) -> "FirstSet":
        table: dict[NonTerminal, PhraseSet] = {}
        for table in first_set_iterations(grammar, max_tokens):
            pass
        return cls(max_tokens=max_tokens, table=table)

    def get(self, non_terminal: NonTerminal) -> PhraseSet | None:
        return self.table.get(non_terminal)

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "max_tokens": self.max_tokens,
            "entries": [
                {
                    "non_terminal": str(non_terminal),
                    "first_set": [str(phrase) for phrase in phrase_set],
                }
                for non_terminal, phrase_set in sorted(self.table.items())
            ],
        }


def first_set_iterations(
    grammar: Grammar,
    max_tokens: int,
) -> typing.Iterator[dict[NonTerminal, PhraseSet]]:
    """Run the fixed point, yielding a snapshot of the table after every pass.
    The last snapshot is the answer.
    """
    table: dict[NonTerminal, PhraseSet] = {}
    iteration = 0
    while True:
        num_changed = 0
        for rule in grammar.rules():
            phrases = first_set_of_rule(max_tokens, rule, table)
            if phrases is None:
                continue

            previous = table.get(rule.name)
            if previous is None:
                table[rule.name] = phrases
                num_changed += 1
            else:
                merged = previous.merge(phrases)
                if merged != previous:
                    table[rule.name] = merged
                    num_changed += 1

        first_log.debug("iteration %d: %d changed", iteration, num_changed)
        yield dict(table)
        if num_changed == 0:
            break
        iteration += 1


def first_set_of_rule(
    max_tokens: int,
    rule: Rule,
    table: dict[NonTerminal, PhraseSet],
) -> PhraseSet | None:
    """The FIRST set of one rule given the table so far, or None if the rule
    refers to a non-terminal we don't know anything about yet.
    """
    result = EPSILON
    for term in rule.production:
        min_tokens = result.min_tokens()
        if min_tokens is not None and min_tokens >= max_tokens:
            break

        first = first_set_of_term(rule, term, table)
        if first is None:
            return None
        result = result.concat(first, limit=max_tokens)
    return result


def first_set_of_term(
    rule: Rule,
    term: Term,
    table: dict[NonTerminal, PhraseSet],
) -> PhraseSet | None:
    match term:
        case EmptyTerm() | LookaheadTerm():
            return EPSILON
        case TokenTerm(token=token):
            return PhraseSet([Phrase((token,))])
        case NonTerminalTerm(non_terminal=non_terminal):
            return table.get(non_terminal)
        case DisallowTerm():
            raise GrammarError(
                f"A disallow marker is reachable while computing FIRST sets in {rule}; "
                "it must follow at least enough tokens to fill the lookahead"
            )
    raise AssertionError(f"unknown term {term!r}")
