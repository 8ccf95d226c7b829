import pytest

from lalrgen.firstset import FirstSet, first_set_iterations
from lalrgen.grammar import (
    Grammar,
    GrammarError,
    NonTerminal,
    disallow,
    lookahead,
    non_terminal,
    rule,
    token,
)
from lalrgen.phrase import PhraseSet

EXPRESSIONS = Grammar(
    [
        rule("E", non_terminal("E"), token("+"), non_terminal("T")),
        rule("E", non_terminal("T")),
        rule("T", token("("), non_terminal("E"), token(")")),
        rule("T", token("id")),
    ]
)


def test_first_set_k1():
    first = FirstSet.from_grammar(EXPRESSIONS, 1)
    assert first.get(NonTerminal("E")) == PhraseSet.of(("(",), ("id",))
    assert first.get(NonTerminal("T")) == PhraseSet.of(("(",), ("id",))


def test_first_set_k2():
    first = FirstSet.from_grammar(EXPRESSIONS, 2)
    assert first.get(NonTerminal("T")) == PhraseSet.of(("(", "("), ("(", "id"), ("id",))
    assert first.get(NonTerminal("E")) == PhraseSet.of(
        ("(", "("), ("(", "id"), ("id",), ("id", "+")
    )


def test_first_set_with_epsilon():
    grammar = Grammar(
        [
            rule("S", non_terminal("A"), token("b")),
            rule("A", token("a")),
            rule("A"),
        ]
    )
    first = FirstSet.from_grammar(grammar, 2)
    assert first.get(NonTerminal("A")) == PhraseSet.of((), ("a",))
    assert first.get(NonTerminal("S")) == PhraseSet.of(("a", "b"), ("b",))


def test_lookahead_terms_are_transparent():
    grammar = Grammar(
        [
            rule("S", token("a"), lookahead("b", exclude=True)),
            rule("S", lookahead("c")),
        ]
    )
    first = FirstSet.from_grammar(grammar, 1)
    assert first.get(NonTerminal("S")) == PhraseSet.of(("a",), ())


def test_undefined_non_terminal_has_no_entry():
    grammar = Grammar([rule("S", non_terminal("S"), token("a"))])
    first = FirstSet.from_grammar(grammar, 1)
    assert first.get(NonTerminal("S")) is None


def test_first_sets_only_grow():
    snapshots = list(first_set_iterations(EXPRESSIONS, 2))
    assert len(snapshots) >= 2
    for before, after in zip(snapshots, snapshots[1:]):
        for non_terminal_name, phrases in before.items():
            assert phrases <= after[non_terminal_name]
    assert snapshots[-1] == snapshots[-2]


def test_disallow_in_first_set_is_an_error():
    grammar = Grammar([rule("S", disallow("LT"), token("a"))])
    with pytest.raises(GrammarError):
        FirstSet.from_grammar(grammar, 1)


def test_disallow_after_enough_tokens_is_fine():
    grammar = Grammar([rule("S", token("a"), disallow("LT"), token("b"))])
    first = FirstSet.from_grammar(grammar, 1)
    assert first.get(NonTerminal("S")) == PhraseSet.of(("a",))

    with pytest.raises(GrammarError):
        FirstSet.from_grammar(grammar, 2)


def test_to_dict():
    first = FirstSet.from_grammar(EXPRESSIONS, 1)
    assert first.to_dict() == {
        "max_tokens": 1,
        "entries": [
            {"non_terminal": "E", "first_set": ["(", "id"]},
            {"non_terminal": "T", "first_set": ["(", "id"]},
        ],
    }
