"""Phrases and phrase sets: the little algebra that lookahead lives in.

A phrase is a bounded sequence of tokens. It shows up all over the generator
in a few different costumes:

- As a FIRST set entry, where it is the (at most k) tokens that can start a
  derivation.
- As the lookahead of an LR item, where it is the tokens that must follow the
  item when it is reduced.
- As the empty phrase, which stands in for "no lookahead" when we are doing
  plain LR(0) closures.

A phrase set is a set of phrases, and the main thing you do with it is
concatenate it with another phrase set: take every pairing of a phrase from
the left with a phrase from the right, glue them together, and (usually)
truncate the result back down to k tokens. That's the whole semiring, more or
less. FIRST set computation is just this operation applied until nothing
changes.

Phrase sets also double as the payload of lookahead restrictions, so they know
how to answer "does this token start something I include (or exclude)?",
returning a `MatchStatus` that says matched, unmatched, or "keep going with
this smaller set".
"""

import dataclasses
import typing

# The end-of-input token. Reserved; grammars may not use it.
END = "$"

# The propagation marker used while computing LALR lookaheads. Also reserved.
MARKER = "#"


@dataclasses.dataclass(frozen=True, order=True)
class Phrase:
    """An immutable sequence of tokens."""

    tokens: typing.Tuple[str, ...] = ()

    @classmethod
    def of(cls, *tokens: str) -> "Phrase":
        return cls(tuple(tokens))

    def __len__(self) -> int:
        return len(self.tokens)

    def __iter__(self) -> typing.Iterator[str]:
        return iter(self.tokens)

    def __getitem__(self, index: int) -> str:
        return self.tokens[index]

    def __bool__(self) -> bool:
        return len(self.tokens) > 0

    def starts_with(self, token: str) -> bool:
        return len(self.tokens) > 0 and self.tokens[0] == token

    def remove_first(self) -> "Phrase | None":
        """Drop the first token, or return None if nothing would remain."""
        if len(self.tokens) < 2:
            return None
        return Phrase(self.tokens[1:])

    def concat(self, other: "Phrase") -> "Phrase":
        if not other.tokens:
            return self
        if not self.tokens:
            return other
        return Phrase(self.tokens + other.tokens)

    def shorten(self, n: int) -> "Phrase":
        if len(self.tokens) <= n:
            return self
        return Phrase(self.tokens[:n])

    def count_tokens(self) -> int:
        # Disallow markers like "(!LineTerminator)" ride along in phrases but
        # don't count as lookahead.
        return sum(1 for token in self.tokens if not token.startswith("(!"))

    def ends_with_marker(self) -> bool:
        return len(self.tokens) > 0 and self.tokens[-1] == MARKER

    def __str__(self) -> str:
        if not self.tokens:
            return "()"
        return " ".join(self.tokens)


EMPTY_PHRASE = Phrase()


@dataclasses.dataclass(frozen=True)
class Matched:
    pass


@dataclasses.dataclass(frozen=True)
class Unmatched:
    pass


@dataclasses.dataclass(frozen=True)
class Remaining:
    value: typing.Any


MatchStatus = Matched | Unmatched | Remaining


class PhraseSet:
    """An immutable set of phrases.

    Iteration is always in sorted order so that everything downstream of a
    phrase set (closures, states, tables) comes out the same way every time.
    """

    __slots__ = ("_phrases", "_sorted", "_hash")

    _phrases: typing.FrozenSet[Phrase]

    def __init__(self, phrases: typing.Iterable[Phrase] = ()):
        self._phrases = frozenset(phrases)
        self._sorted = None
        self._hash = None

    @classmethod
    def of(cls, *phrases: Phrase | typing.Sequence[str]) -> "PhraseSet":
        """Build a set from phrases, or from plain token sequences.

        PhraseSet.of(("a", "b"), ("c",)) is the set [a b, c].
        """
        return cls(p if isinstance(p, Phrase) else Phrase(tuple(p)) for p in phrases)

    def _ordered(self) -> typing.Tuple[Phrase, ...]:
        if self._sorted is None:
            self._sorted = tuple(sorted(self._phrases))
        return self._sorted

    def __iter__(self) -> typing.Iterator[Phrase]:
        return iter(self._ordered())

    def __len__(self) -> int:
        return len(self._phrases)

    def __contains__(self, phrase: object) -> bool:
        return phrase in self._phrases

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PhraseSet):
            return NotImplemented
        return self._phrases == other._phrases

    def __lt__(self, other: "PhraseSet") -> bool:
        return self._ordered() < other._ordered()

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(self._phrases)
        return self._hash

    def __le__(self, other: "PhraseSet") -> bool:
        return self._phrases <= other._phrases

    def __repr__(self) -> str:
        return f"PhraseSet({self})"

    def __str__(self) -> str:
        return "[" + ", ".join(str(phrase) for phrase in self) + "]"

    def max_tokens(self) -> int | None:
        if not self._phrases:
            return None
        return max(phrase.count_tokens() for phrase in self._phrases)

    def min_tokens(self) -> int | None:
        if not self._phrases:
            return None
        return min(phrase.count_tokens() for phrase in self._phrases)

    def concat(self, other: "PhraseSet", limit: int | None = None) -> "PhraseSet":
        """Pairwise concatenation. With a limit, every result is shortened to
        at most `limit` tokens, which also collapses duplicates.

        Concatenating with the empty set gives the empty set, and the set
        containing only the empty phrase is the identity.
        """
        result = set()
        for a in self._phrases:
            for b in other._phrases:
                phrase = a.concat(b)
                if limit is not None:
                    phrase = phrase.shorten(limit)
                result.add(phrase)
        return PhraseSet(result)

    def concat_phrase(self, phrase: Phrase, limit: int | None = None) -> "PhraseSet":
        result = set()
        for p in self._phrases:
            p = p.concat(phrase)
            if limit is not None:
                p = p.shorten(limit)
            result.add(p)
        return PhraseSet(result)

    def shorten(self, n: int) -> "PhraseSet":
        return PhraseSet(phrase.shorten(n) for phrase in self._phrases)

    def merge(self, other: "PhraseSet") -> "PhraseSet":
        if other._phrases <= self._phrases:
            return self
        if self._phrases <= other._phrases:
            return other
        return PhraseSet(self._phrases | other._phrases)

    def _strip(self, token: str) -> tuple[bool, "PhraseSet"]:
        """Returns whether any phrase starts with `token`, and the set of
        what's left of those phrases once the token is removed.
        """
        found = False
        rest = set()
        for phrase in self._phrases:
            if phrase.starts_with(token):
                found = True
                remaining = phrase.remove_first()
                if remaining is not None:
                    rest.add(remaining)
        return found, PhraseSet(rest)

    def includes(self, token: str) -> MatchStatus:
        """Check `token` against this set as an inclusion condition."""
        found, rest = self._strip(token)
        if not found:
            return Unmatched()
        if len(rest) == 0:
            return Matched()
        return Remaining(rest)

    def excludes(self, token: str) -> MatchStatus:
        """Check `token` against this set as an exclusion condition."""
        found, rest = self._strip(token)
        if not found:
            return Matched()
        if len(rest) == 0:
            return Unmatched()
        return Remaining(rest)


EMPTY_SET = PhraseSet()
EPSILON = PhraseSet([EMPTY_PHRASE])
