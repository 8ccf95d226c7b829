"""The grammar model: non-terminals, terms, rules, and the grammar itself.

Grammars here are plain data. A grammar is an ordered list of `Rule`s, and
a rule is a non-terminal name and a tuple of `Term`s. The order of the rules
matters: it decides which of two conflicting reductions wins, and it decides
how the preprocessor numbers the variants it synthesizes.

On top of the usual tokens and non-terminals, a production can carry two
extra kinds of term, both borrowed from the way ECMA-262 writes its grammar:

    [lookahead ∉ { `let [` }]      becomes   LookaheadTerm(Lookahead(..., negated=True))
    [no LineTerminator here]       becomes   DisallowTerm("LineTerminator")

Neither one consumes input. A lookahead term constrains the tokens that
follow it; a disallow term forbids one particular token right at that point.

Grammars can be built in Python with the little helpers at the bottom of this
file:

    rule("S", token("a"), non_terminal("S"), token("b"))
    rule("S")                                           # S -> (nothing)
    rule("A", token("x"), lookahead("y", exclude=True))

or loaded from a list of JSON-ish descriptors with `Grammar.from_descriptors`.
"""

import collections
import dataclasses
import functools
import logging
import typing

from .phrase import END, MARKER, Matched, MatchStatus, Phrase, PhraseSet, Remaining, Unmatched

grammar_log = logging.getLogger("lalrgen.grammar")


class GrammarError(ValueError):
    """The grammar is malformed in a way that makes building a table pointless."""


class LookaheadBoundError(GrammarError):
    """Some lookahead restriction needs more tokens than the generator is
    allowed to look at.

    Silently truncating the restriction would produce a table that accepts
    things it shouldn't (or vice versa), so we refuse instead.
    """

    def __init__(self, max_tokens: int, rules: typing.Sequence["Rule"]):
        self.max_tokens = max_tokens
        self.rules = tuple(rules)
        lines = [f"The grammar needs more than {max_tokens} token(s) of lookahead in:"]
        lines.extend(f"- {rule}" for rule in self.rules)
        super().__init__("\n".join(lines))


class GrammarWarning:
    """Base class for problems that are worth reporting but don't stop a table
    from being built.
    """

    def to_dict(self) -> dict[str, typing.Any]:
        raise NotImplementedError()


@dataclasses.dataclass(frozen=True)
class UnreachableNonTerminal(GrammarWarning):
    non_terminal: str
    goal: str

    def to_dict(self) -> dict[str, typing.Any]:
        return {"kind": "unreachable", "non_terminal": self.non_terminal, "goal": self.goal}

    def __str__(self):
        return f"{self.non_terminal} is unreachable from {self.goal}"


###############################################################################
# Symbols
###############################################################################
@dataclasses.dataclass(frozen=True, order=True)
class NonTerminal:
    """The name on the left hand side of a rule.

    `variant` is zero for symbols that come straight from the grammar. The
    preprocessor makes variants (A.1, A.2, ...) when it has to push a
    lookahead restriction down into the rules for A.
    """

    symbol: str
    variant: int = 0
    goal: bool = False

    def with_variant(self, variant: int) -> "NonTerminal":
        assert not self.goal
        return NonTerminal(self.symbol, variant)

    @property
    def is_variant(self) -> bool:
        return self.variant > 0

    def __str__(self) -> str:
        if self.goal:
            return "^"
        if self.variant:
            return f"{self.symbol}.{self.variant}"
        return self.symbol


# The goal symbol of an augmented grammar.
GOAL = NonTerminal("^", goal=True)


class Symbol(typing.NamedTuple):
    """A grammar symbol as the automaton sees it: a token or a (non-variant)
    non-terminal. Tokens sort before non-terminals.
    """

    is_non_terminal: bool
    name: str

    @classmethod
    def token(cls, name: str) -> "Symbol":
        return cls(False, name)

    @classmethod
    def non_terminal(cls, name: str) -> "Symbol":
        return cls(True, name)

    def __str__(self) -> str:
        return self.name


###############################################################################
# Lookahead conditions
###############################################################################
@dataclasses.dataclass(frozen=True)
class Lookahead:
    """A lookahead condition. The phrases are the ones that must (or, if
    negated, must not) come next.
    """

    phrases: PhraseSet
    negated: bool = False

    def max_tokens(self) -> int | None:
        return self.phrases.max_tokens()

    def process_token(self, token: str) -> MatchStatus:
        """Feed one token to the condition.

        Returns Matched or Unmatched once the condition is decided, or
        Remaining(lookahead) with what is left of the condition otherwise.
        """
        if self.negated:
            status = self.phrases.excludes(token)
        else:
            status = self.phrases.includes(token)
        match status:
            case Remaining(value=rest):
                return Remaining(Lookahead(rest, self.negated))
            case _:
                return status

    def check(self, phrase: Phrase) -> bool | None:
        """Run the whole phrase through the condition.

        Returns True or False once decided, and None if the phrase runs out
        (or reaches the propagation marker) before the condition decides.
        """
        condition = self
        for token in phrase:
            if token == MARKER:
                return None
            match condition.process_token(token):
                case Matched():
                    return True
                case Unmatched():
                    return False
                case Remaining(value=rest):
                    condition = rest
        return None

    @property
    def sort_key(self) -> tuple:
        return (self.negated, tuple(p.tokens for p in self.phrases))

    def __str__(self) -> str:
        return f"(?!{self.phrases})" if self.negated else f"(?={self.phrases})"


###############################################################################
# Terms
###############################################################################
@dataclasses.dataclass(frozen=True)
class Term:
    def is_symbol(self) -> bool:
        return False

    def is_lookahead(self) -> bool:
        return False

    @property
    def sort_key(self) -> tuple:
        raise NotImplementedError()

    def to_descriptor(self) -> dict[str, typing.Any]:
        raise NotImplementedError()


@dataclasses.dataclass(frozen=True)
class EmptyTerm(Term):
    @property
    def sort_key(self) -> tuple:
        return (0,)

    def to_descriptor(self) -> dict[str, typing.Any]:
        return {"type": "empty"}

    def __str__(self) -> str:
        return "(empty)"


@dataclasses.dataclass(frozen=True)
class TokenTerm(Term):
    token: str

    def is_symbol(self) -> bool:
        return True

    @property
    def sort_key(self) -> tuple:
        return (1, self.token)

    def to_descriptor(self) -> dict[str, typing.Any]:
        return {"type": "token", "data": self.token}

    def __str__(self) -> str:
        return self.token


@dataclasses.dataclass(frozen=True)
class NonTerminalTerm(Term):
    non_terminal: NonTerminal

    def is_symbol(self) -> bool:
        return True

    @property
    def sort_key(self) -> tuple:
        nt = self.non_terminal
        return (2, nt.symbol, nt.variant, nt.goal)

    def to_descriptor(self) -> dict[str, typing.Any]:
        return {"type": "non-terminal", "data": str(self.non_terminal)}

    def __str__(self) -> str:
        return str(self.non_terminal)


@dataclasses.dataclass(frozen=True)
class LookaheadTerm(Term):
    lookahead: Lookahead

    def is_lookahead(self) -> bool:
        return True

    @property
    def sort_key(self) -> tuple:
        return (3,) + self.lookahead.sort_key

    def to_descriptor(self) -> dict[str, typing.Any]:
        return {
            "type": "lookahead",
            "data": {
                "type": "exclude" if self.lookahead.negated else "include",
                "data": [list(phrase.tokens) for phrase in self.lookahead.phrases],
            },
        }

    def __str__(self) -> str:
        return str(self.lookahead)


@dataclasses.dataclass(frozen=True)
class DisallowTerm(Term):
    token: str

    @property
    def sort_key(self) -> tuple:
        return (4, self.token)

    def to_descriptor(self) -> dict[str, typing.Any]:
        return {"type": "disallow", "data": self.token}

    def __str__(self) -> str:
        return f"(!{self.token})"


def term_from_descriptor(descriptor: dict[str, typing.Any]) -> Term:
    kind = descriptor.get("type")
    data = descriptor.get("data")
    match kind:
        case "empty":
            return EmptyTerm()
        case "token":
            return TokenTerm(data)
        case "non-terminal":
            return NonTerminalTerm(NonTerminal(data))
        case "lookahead":
            condition = data.get("type")
            if condition not in ("include", "exclude"):
                raise GrammarError(f"Unknown lookahead condition type: {condition!r}")
            phrases = PhraseSet.of(*(tuple(tokens) for tokens in data.get("data", [])))
            return LookaheadTerm(Lookahead(phrases, negated=condition == "exclude"))
        case "disallow":
            return DisallowTerm(data)
        case _:
            raise GrammarError(f"Unknown term type: {kind!r}")


###############################################################################
# Rules
###############################################################################
@dataclasses.dataclass(frozen=True)
class Rule:
    """A production. Rules are immutable and compare structurally, so the same
    rule can be shared by any number of items and used as a dictionary key.
    """

    name: NonTerminal
    production: typing.Tuple[Term, ...] = ()

    @functools.cached_property
    def sort_key(self) -> tuple:
        nt = self.name
        return ((nt.symbol, nt.variant, nt.goal), tuple(t.sort_key for t in self.production))

    @functools.cached_property
    def _hash(self) -> int:
        return hash((self.name, self.production))

    def __hash__(self) -> int:
        return self._hash

    def __lt__(self, other: "Rule") -> bool:
        return self.sort_key < other.sort_key

    @property
    def is_goal(self) -> bool:
        return self.name.goal

    def count_symbols(self) -> int:
        """The number of tokens and non-terminals; what a reduce pops."""
        return sum(1 for term in self.production if term.is_symbol())

    def tail_lookahead(self) -> Lookahead | None:
        if self.production and isinstance(self.production[-1], LookaheadTerm):
            return self.production[-1].lookahead
        return None

    def has_tail_lookahead(self) -> bool:
        return self.tail_lookahead() is not None

    def has_inner_lookahead(self) -> bool:
        return any(term.is_lookahead() for term in self.production[:-1])

    def to_descriptor(self) -> dict[str, typing.Any]:
        return {
            "name": str(self.name),
            "production": [term.to_descriptor() for term in self.production],
        }

    def __str__(self) -> str:
        if not self.production:
            return f"{self.name} ->"
        return f"{self.name} -> " + " ".join(str(term) for term in self.production)


###############################################################################
# Grammar
###############################################################################
class Grammar:
    """An ordered collection of rules, indexed by non-terminal.

    A grammar produced by the preprocessor also remembers, for every rule it
    rewrote, the rule it was rewritten from. `to_original_rule` follows that
    chain back to a rule of the input grammar.
    """

    _rules: typing.Tuple[Rule, ...]
    _non_terminals: dict[NonTerminal, list[Rule]]
    _original_rules: dict[Rule, Rule]

    def __init__(
        self,
        rules: typing.Iterable[Rule],
        original_rules: dict[Rule, Rule] | None = None,
    ):
        self._rules = tuple(rules)
        self._non_terminals = {}
        for rule in self._rules:
            self._non_terminals.setdefault(rule.name, []).append(rule)
        self._original_rules = dict(original_rules or {})

    @classmethod
    def from_descriptors(cls, descriptors: typing.Iterable[dict[str, typing.Any]]) -> "Grammar":
        """Load a grammar from serialized rules:

            [{"name": "S", "production": [{"type": "token", "data": "a"}, ...]}, ...]
        """
        rules = []
        for descriptor in descriptors:
            try:
                name = descriptor["name"]
                production = descriptor.get("production", [])
            except (KeyError, TypeError) as e:
                raise GrammarError(f"Malformed rule descriptor: {descriptor!r}") from e
            rules.append(
                Rule(NonTerminal(name), tuple(term_from_descriptor(t) for t in production))
            )
        return cls(rules)

    def to_descriptors(self) -> list[dict[str, typing.Any]]:
        return [rule.to_descriptor() for rule in self._rules]

    def __len__(self) -> int:
        return len(self._rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grammar):
            return NotImplemented
        return self._rules == other._rules

    def rules(self) -> typing.Tuple[Rule, ...]:
        return self._rules

    def non_terminals(self) -> list[NonTerminal]:
        """Every non-terminal that has rules, in order of first definition."""
        return list(self._non_terminals.keys())

    def non_terminal_rules(self, non_terminal: NonTerminal) -> typing.Tuple[Rule, ...]:
        """The rules for a non-terminal, or () if it has none."""
        return tuple(self._non_terminals.get(non_terminal, ()))

    def goal_rules(self) -> typing.Tuple[Rule, ...]:
        return self.non_terminal_rules(GOAL)

    def tokens(self) -> list[str]:
        """All the tokens used by any production, sorted."""
        result = set()
        for rule in self._rules:
            for term in rule.production:
                if isinstance(term, (TokenTerm, DisallowTerm)):
                    result.add(term.token)
        return sorted(result)

    def validate(self):
        """Check that the grammar can be compiled at all.

        Raises GrammarError naming every undefined non-terminal (and the rules
        that refer to them), or if the grammar is empty or uses a reserved
        token.
        """
        if len(self._rules) == 0:
            raise GrammarError("The grammar has no rules")

        reserved = [token for token in self.tokens() if token in (END, MARKER)]
        if reserved:
            raise GrammarError(
                "Can't use {tokens} in grammars, {what} reserved.".format(
                    tokens=" or ".join(reserved),
                    what="it's" if len(reserved) == 1 else "they're",
                )
            )

        undefined: dict[NonTerminal, list[Rule]] = {}
        for rule in self._rules:
            for term in rule.production:
                if isinstance(term, NonTerminalTerm) and term.non_terminal not in self._non_terminals:
                    undefined.setdefault(term.non_terminal, []).append(rule)

        if undefined:
            lines = []
            for non_terminal, rules in undefined.items():
                lines.append(f"{non_terminal} is not defined (used in {rules[0]})")
            raise GrammarError("\n".join(lines))

    def reachable_from(self, non_terminal: NonTerminal) -> set[NonTerminal]:
        seen: set[NonTerminal] = set()
        queue = collections.deque([non_terminal])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            for rule in self.non_terminal_rules(current):
                for term in rule.production:
                    if isinstance(term, NonTerminalTerm) and term.non_terminal not in seen:
                        queue.append(term.non_terminal)
        return seen

    def create_augmented_grammar(self, goal_symbol: str, prune_unreachable: bool = True) -> "Grammar":
        """Make the augmented grammar for the given goal: a new rule `^ -> Goal`
        comes first, followed by every rule reachable from the goal, in their
        original order.

        Unreachable non-terminals are dropped and logged, unless
        `prune_unreachable` is False, in which case they are an error.
        """
        goal = NonTerminal(goal_symbol)
        if goal not in self._non_terminals:
            raise GrammarError(f"The goal symbol {goal_symbol} is not defined")

        reachable = self.reachable_from(goal)
        unreachable = [nt for nt in self.non_terminals() if nt not in reachable]
        if unreachable:
            if not prune_unreachable:
                raise GrammarError(
                    "Unreachable from {goal}: {symbols}".format(
                        goal=goal_symbol,
                        symbols=", ".join(str(nt) for nt in unreachable),
                    )
                )
            for non_terminal in unreachable:
                grammar_log.debug("removed unreachable %s", non_terminal)

        rules = [Rule(GOAL, (NonTerminalTerm(goal),))]
        rules.extend(rule for rule in self._rules if rule.name in reachable)
        return Grammar(rules)

    def unreachable_from(self, goal_symbol: str) -> list[NonTerminal]:
        reachable = self.reachable_from(NonTerminal(goal_symbol))
        return [nt for nt in self.non_terminals() if nt not in reachable]

    def max_lookahead_tokens(self) -> int:
        """The longest phrase any lookahead restriction in the grammar needs."""
        result = 0
        for rule in self._rules:
            for term in rule.production:
                if isinstance(term, LookaheadTerm):
                    result = max(result, term.lookahead.max_tokens() or 0)
        return result

    def rules_needing_more_than(self, max_tokens: int) -> list[Rule]:
        return [
            rule
            for rule in self._rules
            if any(
                isinstance(term, LookaheadTerm) and (term.lookahead.max_tokens() or 0) > max_tokens
                for term in rule.production
            )
        ]

    def to_original_rule(self, rule: Rule) -> Rule:
        """Follow the rewrite chain of a (possibly synthesized) rule back to the
        rule of the input grammar it came from.
        """
        while True:
            original = self._original_rules.get(rule)
            if original is None:
                return rule
            rule = original

    def format(self) -> str:
        return "\n".join(str(rule) for rule in self._rules)


###############################################################################
# Builders
###############################################################################
def empty() -> Term:
    return EmptyTerm()


def token(name: str) -> Term:
    return TokenTerm(name)


def non_terminal(name: str) -> Term:
    return NonTerminalTerm(NonTerminal(name))


def lookahead(*phrases: str | typing.Sequence[str], exclude: bool = False) -> Term:
    """A lookahead restriction. Each argument is one phrase: either a single
    token, or a sequence of tokens.

        lookahead("a", ("b", "c"), exclude=True)   # [lookahead ∉ { a, b c }]
    """
    phrase_set = PhraseSet.of(*((p,) if isinstance(p, str) else tuple(p) for p in phrases))
    return LookaheadTerm(Lookahead(phrase_set, negated=exclude))


def disallow(name: str) -> Term:
    return DisallowTerm(name)


def rule(name: str, *terms: Term) -> Rule:
    return Rule(NonTerminal(name), tuple(terms))
