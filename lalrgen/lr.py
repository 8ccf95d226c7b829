import dataclasses
import functools
import typing

from .grammar import DisallowTerm, Grammar, Rule, Term
from .phrase import EMPTY_PHRASE, Phrase


@dataclasses.dataclass(frozen=True)
class LrItem:
    """A position within a rule, plus (maybe) a lookahead phrase.

    These are immutable and there are a great many of them. Moving the dot or
    changing the lookahead makes a new item. An item with the empty phrase as
    its lookahead is a plain LR(0) item.
    """

    rule: Rule
    dot: int
    lookahead: Phrase = EMPTY_PHRASE

    @functools.cached_property
    def sort_key(self) -> tuple:
        return (self.rule.sort_key, self.dot, self.lookahead.tokens)

    def __lt__(self, other: "LrItem") -> bool:
        return self.sort_key < other.sort_key

    def shift(self) -> "LrItem":
        assert self.dot < len(self.rule.production), str(self)
        return LrItem(self.rule, self.dot + 1, self.lookahead)

    def with_lookahead(self, lookahead: Phrase) -> "LrItem":
        return LrItem(self.rule, self.dot, lookahead)

    def without_lookahead(self) -> "LrItem":
        return LrItem(self.rule, self.dot, EMPTY_PHRASE)

    def to_original(self, grammar: Grammar) -> "LrItem":
        """Map an item over a preprocessed rule onto the rule it came from.

        The original rule may have lookahead terms that the preprocessed one
        doesn't, so the dot has to be recomputed: walk the original
        production, counting only the terms that aren't lookaheads.
        """
        original = grammar.to_original_rule(self.rule)
        dot = self.dot
        if dot > 0:
            counted = 0
            dot = 0
            while counted < self.dot and dot < len(original.production):
                if not original.production[dot].is_lookahead():
                    counted += 1
                dot += 1
        return LrItem(original, dot, self.lookahead)

    @property
    def k(self) -> int:
        return len(self.lookahead)

    def is_kernel(self) -> bool:
        return self.rule.is_goal or self.dot > 0

    def is_reducible(self) -> bool:
        return self.dot >= len(self.rule.production)

    def next_term(self) -> Term | None:
        if self.dot < len(self.rule.production):
            return self.rule.production[self.dot]
        return None

    def prev_term(self) -> Term | None:
        if self.dot == 0:
            return None
        return self.rule.production[self.dot - 1]

    def follower_terms(self) -> typing.Tuple[Term, ...]:
        return self.rule.production[self.dot :]

    def is_restricted(self) -> bool:
        return isinstance(self.next_term(), DisallowTerm)

    def is_disallowed(self, token: str) -> bool:
        """True if the dot is right next to a [no `token` here] marker."""
        for term in (self.next_term(), self.prev_term()):
            if isinstance(term, DisallowTerm) and term.token == token:
                return True
        return False

    def __str__(self) -> str:
        parts = [f"[{self.rule.name} ->"]
        for i, term in enumerate(self.rule.production):
            if i == self.dot:
                parts.append(".")
            parts.append(str(term))
        if self.is_reducible():
            parts.append(".")
        result = " ".join(parts)
        if self.lookahead:
            result += f", {self.lookahead}"
        result += "]"
        if self.is_kernel():
            result += "*"
        return result


class LrItemSet:
    """An immutable set of items. Iterates in a stable, sorted order."""

    __slots__ = ("_items", "_sorted", "_hash")

    def __init__(self, items: typing.Iterable[LrItem] = ()):
        self._items = frozenset(items)
        self._sorted = None
        self._hash = None

    def _ordered(self) -> typing.Tuple[LrItem, ...]:
        if self._sorted is None:
            self._sorted = tuple(sorted(self._items, key=lambda item: item.sort_key))
        return self._sorted

    def __iter__(self) -> typing.Iterator[LrItem]:
        return iter(self._ordered())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LrItemSet):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(self._items)
        return self._hash

    def __le__(self, other: "LrItemSet") -> bool:
        return self._items <= other._items

    def items(self) -> typing.FrozenSet[LrItem]:
        return self._items

    def kernel_items(self) -> list[LrItem]:
        return [item for item in self._ordered() if item.is_kernel()]

    def non_kernel_items(self) -> list[LrItem]:
        return [item for item in self._ordered() if not item.is_kernel()]

    def to_original(self, grammar: Grammar) -> "LrItemSet":
        return LrItemSet(item.to_original(grammar) for item in self._items)

    def __repr__(self) -> str:
        return f"LrItemSet({self})"

    def __str__(self) -> str:
        # Only the kernel; the rest is derived.
        return "{" + ",".join(str(item) for item in self.kernel_items()) + "}"
