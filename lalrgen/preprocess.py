"""Rewrite inner lookahead restrictions into tail position.

The closure computation only knows how to deal with a lookahead restriction
that sits at the very end of a rule: when it expands `A` it can check each
candidate lookahead phrase against the restriction at the end of each of A's
rules, and that's it. Restrictions in the middle of a rule, like

    S -> [lookahead ∉ { a }] T

have to be moved out of the way first. We do that by walking the rule left to
right with the restriction "pending":

- If the next term is a token, we can decide (or partly decide) the
  restriction right now. If it fails, the whole rule can never match and we
  drop it. If it passes, the restriction is consumed. If it needs more tokens,
  we keep going with what's left of it.
- If the next term is a non-terminal, we push the restriction down into a new
  *variant* of that non-terminal. For `T` above we make `T.1`, with one rule
  for each rule of T, each of which starts with the restriction. Then those
  rules are preprocessed in turn, which either decides the restriction, pushes
  it further down, or leaves it at the tail of an empty rule.

Variant rules that get dropped can leave other rules referring to variants
that have no rules at all; those are removed too, until nothing changes.

Every rule we rewrite remembers the rule it came from, so that items built
from the new grammar can be mapped back onto the input grammar.
"""

import collections
import logging

from .grammar import (
    EmptyTerm,
    Grammar,
    GrammarError,
    Lookahead,
    LookaheadTerm,
    NonTerminal,
    NonTerminalTerm,
    Rule,
    Term,
)
from .phrase import Matched, Remaining, Unmatched

preprocess_log = logging.getLogger("lalrgen.preprocess")


class VariantNameTable:
    """Hands out variant names, one per (non-terminal, restriction) pair.

    Variant ids are global, not per non-terminal, and start at 1.
    """

    def __init__(self):
        self.next_variant_id = 1
        self.variants: dict[tuple[NonTerminal, Lookahead], NonTerminal] = {}

    def get(self, non_terminal: NonTerminal, lookahead: Lookahead) -> NonTerminal | None:
        return self.variants.get((non_terminal, lookahead))

    def create(self, non_terminal: NonTerminal, lookahead: Lookahead) -> NonTerminal:
        variant = non_terminal.with_variant(self.next_variant_id)
        self.next_variant_id += 1
        self.variants[(non_terminal, lookahead)] = variant
        return variant


class LookaheadPreprocessor:
    """Rewrites a single rule. Feed it terms with `preprocess` until it
    returns False or the production runs out.
    """

    def __init__(
        self,
        grammar: Grammar,
        table: VariantNameTable,
        original_rules: dict[Rule, Rule],
    ):
        self.grammar = grammar
        self.table = table
        self.original_rules = original_rules
        self.lookahead: Lookahead | None = None
        self.production: list[Term] = []
        self.variant_rules: list[Rule] = []
        self.invalid = False

    def preprocess(self, rule: Rule, term: Term) -> bool:
        lookahead = self.lookahead
        self.lookahead = None

        if lookahead is None:
            if isinstance(term, LookaheadTerm):
                self.lookahead = term.lookahead
            else:
                self.production.append(term)
            return True

        if isinstance(term, LookaheadTerm):
            raise GrammarError(f"Adjacent lookahead restrictions in {rule}")

        if isinstance(term, EmptyTerm):
            self.production.append(term)
            self.lookahead = lookahead
            return True

        if isinstance(term, NonTerminalTerm):
            variant = self._variant_of(term.non_terminal, lookahead)
            self.production.append(NonTerminalTerm(variant))
            return True

        # Tokens and disallow markers are matched by how they print, so a
        # restriction like (?![(!LineTerminator)]) can talk about a marker.
        match lookahead.process_token(str(term)):
            case Matched():
                self.production.append(term)
                return True
            case Unmatched():
                self.invalid = True
                return False
            case Remaining(value=rest):
                self.production.append(term)
                self.lookahead = rest
                return True

        raise AssertionError("unreachable")

    def _variant_of(self, non_terminal: NonTerminal, lookahead: Lookahead) -> NonTerminal:
        variant = self.table.get(non_terminal, lookahead)
        if variant is not None:
            return variant

        variant = self.table.create(non_terminal, lookahead)
        for rule in self.grammar.non_terminal_rules(non_terminal):
            variant_rule = Rule(variant, (LookaheadTerm(lookahead),) + rule.production)
            if preprocess_log.isEnabledFor(logging.DEBUG):
                preprocess_log.debug("variant %s (from %s)", variant_rule, rule)
            self.original_rules[variant_rule] = rule
            self.variant_rules.append(variant_rule)
        return variant

    def take_production(self) -> tuple[Term, ...]:
        production = self.production
        if self.lookahead is not None:
            production.append(LookaheadTerm(self.lookahead))
        self.production = []
        self.lookahead = None
        return tuple(production)


def remove_invalidated_rules(rules: list[Rule]) -> list[Rule]:
    """Drop rules that refer to non-terminals that no longer have any rules,
    until there are no more to drop.
    """
    while True:
        defined = {rule.name for rule in rules}
        kept = []
        for rule in rules:
            valid = all(
                term.non_terminal in defined
                for term in rule.production
                if isinstance(term, NonTerminalTerm)
            )
            if valid:
                kept.append(rule)
            else:
                preprocess_log.debug("invalidated %s", rule)
        if len(kept) == len(rules):
            return kept
        rules = kept


def preprocess(grammar: Grammar) -> Grammar:
    """Return a grammar equivalent to `grammar` in which every lookahead
    restriction is the last term of its rule.

    If there is nothing to do, the grammar comes back unchanged (the very same
    object).
    """
    table = VariantNameTable()
    original_rules: dict[Rule, Rule] = {}

    remaining = collections.deque(grammar.rules())
    changed = False
    rules: list[Rule] = []
    while remaining:
        rule = remaining.popleft()
        if len(rule.production) < 2 or not rule.has_inner_lookahead():
            rules.append(rule)
            continue

        changed = True
        preprocessor = LookaheadPreprocessor(grammar, table, original_rules)
        for term in rule.production:
            if not preprocessor.preprocess(rule, term):
                break

        remaining.extend(preprocessor.variant_rules)
        if preprocessor.invalid:
            preprocess_log.debug("invalidated %s", rule)
            continue

        modified = Rule(rule.name, preprocessor.take_production())
        preprocess_log.debug("modified %s (from %s)", modified, rule)
        if modified != rule:
            original_rules[modified] = rule
        rules.append(modified)

    preprocess_log.debug("changed: %s", changed)
    if not changed:
        return grammar

    rules = remove_invalidated_rules(rules)
    return Grammar(rules, original_rules)
