"""The closure of LR items.

The closure of an item is everything you get by repeatedly "entering" the
non-terminal after the dot: for [S -> a . B c] we add [B -> . x] for every
rule of B, and then close those too.

This works in two modes, picked by the item itself:

- An item with no lookahead is an LR(0) item, and so is everything added to
  its closure.
- An item with a lookahead phrase drags lookahead along: the items added for
  B get FIRST(c) followed by the item's own lookahead, cut down to k tokens.
  This is how the LALR builder finds out where lookaheads come from.

In lookahead mode, a rule of B that ends with a lookahead restriction only
gets added for the lookahead phrases that satisfy the restriction. (That is
why the preprocessor goes to the trouble of moving every restriction to the
end of its rule.)

Closures are memoized in a `ClosureCache`, which can be shared between
threads. The closure of an item is worked out with a worklist rather than
by recursion, so left recursion (B -> B x) and rules that mention themselves
more than once (A -> A A x) expand every item only once.
"""

import logging
import threading
import typing

from .firstset import FirstSet
from .grammar import (
    DisallowTerm,
    EmptyTerm,
    Grammar,
    GrammarError,
    LookaheadTerm,
    NonTerminalTerm,
    Term,
    TokenTerm,
)
from .lr import LrItem, LrItemSet
from .phrase import EMPTY_SET, EPSILON, MARKER, Phrase, PhraseSet

closure_log = logging.getLogger("lalrgen.closure")


class LookaheadUnderflowError(AssertionError):
    """A lookahead restriction ran out of tokens before it could decide.

    This can't happen for a grammar that passed the lookahead bound check, so
    seeing it means something is wrong inside the generator.
    """

    def __init__(self, condition, phrase: Phrase):
        self.condition = condition
        self.phrase = phrase
        super().__init__(f"The phrase '{phrase}' is too short to decide {condition}")


class ClosureCache:
    """A map from seed item to closure, safe to share between threads.

    Entries are only ever inserted, never replaced, and two threads racing to
    insert the same key will compute the same value anyway.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[LrItem, LrItemSet] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, item: LrItem) -> LrItemSet | None:
        return self._entries.get(item)

    def insert(self, item: LrItem, item_set: LrItemSet) -> LrItemSet:
        with self._lock:
            return self._entries.setdefault(item, item_set)


class ClosureContext:
    """Computes closures for one thread of work.

    The grammar and FIRST sets are read-only; the cache may be shared.
    """

    grammar: Grammar
    first_set: FirstSet
    cache: ClosureCache

    def __init__(self, grammar: Grammar, first_set: FirstSet, cache: ClosureCache | None = None):
        self.grammar = grammar
        self.first_set = first_set
        self.cache = cache if cache is not None else ClosureCache()

    def compute_closure(self, items: typing.Iterable[LrItem]) -> LrItemSet:
        result: set[LrItem] = set()
        for item in items:
            result.update(self.compute_closure_of_item(item).items())
        return LrItemSet(result)

    def compute_closure_of_item(self, item: LrItem) -> LrItemSet:
        cached = self.cache.get(item)
        if cached is not None:
            return cached

        items = {item}
        pending = [item]
        while pending:
            current = pending.pop()
            for child in self._expand(current):
                if child in items:
                    continue
                known = self.cache.get(child)
                if known is not None:
                    items.update(known.items())
                    continue
                items.add(child)
                pending.append(child)

        if closure_log.isEnabledFor(logging.DEBUG):
            closure_log.debug("closure of %s has %d items", item, len(items))
        return self.cache.insert(item, LrItemSet(items))

    def _expand(self, item: LrItem) -> list[LrItem]:
        """The items directly added to the closure by `item`."""
        followers = item.follower_terms()
        if not followers:
            return []

        next_term = followers[0]
        match next_term:
            case EmptyTerm() | LookaheadTerm() | DisallowTerm():
                return [item.shift()]

            case TokenTerm():
                return []

            case NonTerminalTerm(non_terminal=non_terminal):
                k = self.first_set.max_tokens
                if item.k > 0:
                    lookahead_set = self.first_set_of_followers(
                        k, followers[1:], item.lookahead
                    )
                else:
                    lookahead_set = EPSILON

                result = []
                for rule in self.grammar.non_terminal_rules(non_terminal):
                    condition = rule.tail_lookahead()
                    for lookahead in lookahead_set:
                        # An undecided condition (short phrase, or the
                        # propagation marker) keeps the item.
                        if condition is not None and condition.check(lookahead) is False:
                            continue
                        result.append(LrItem(rule, 0, lookahead.shorten(k)))
                return result

        raise AssertionError(f"unknown term {next_term!r}")

    def first_set_of_followers(
        self,
        k: int,
        terms: typing.Sequence[Term],
        lookahead: Phrase,
    ) -> PhraseSet:
        """FIRST(terms) followed by `lookahead`, truncated to k tokens, and
        filtered through the restriction at the end of `terms`, if any.
        """
        condition = None
        if terms and isinstance(terms[-1], LookaheadTerm):
            condition = terms[-1].lookahead
            terms = terms[:-1]

        first_set = EPSILON
        for term in terms:
            match term:
                case EmptyTerm() | DisallowTerm():
                    pass
                case TokenTerm(token=token):
                    first_set = first_set.concat(PhraseSet([Phrase((token,))]), limit=k)
                case NonTerminalTerm(non_terminal=non_terminal):
                    other = self.first_set.get(non_terminal)
                    first_set = first_set.concat(other or EMPTY_SET, limit=k)
                case LookaheadTerm():
                    raise GrammarError(f"Inner lookahead restriction left in {terms}")

            min_tokens = first_set.min_tokens()
            if min_tokens is None or min_tokens >= k:
                break

        first_set = first_set.concat_phrase(lookahead, limit=k)

        if condition is not None:
            kept = []
            for phrase in first_set:
                decided = condition.check(phrase)
                if decided is None:
                    if MARKER not in phrase.tokens:
                        raise LookaheadUnderflowError(condition, phrase)
                    kept.append(phrase)
                elif decided:
                    kept.append(phrase)
            first_set = PhraseSet(kept)

        return first_set
