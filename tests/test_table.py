import logging

import pytest

from lalrgen.generator import ParserGenerator, generate
from lalrgen.grammar import (
    Grammar,
    GrammarWarning,
    LookaheadBoundError,
    UnreachableNonTerminal,
    disallow,
    lookahead,
    non_terminal,
    rule,
    token,
)
from lalrgen.table import (
    Accept,
    AmbiguityError,
    ConflictKind,
    Error,
    Ignore,
    MissingLookahead,
    ParseTable,
    Reduce,
    Replace,
    Shift,
)

NESTED = Grammar(
    [
        rule("S", token("a"), non_terminal("S"), token("b")),
        rule("S"),
    ]
)

DANGLING_ELSE = Grammar(
    [
        rule("S", token("if"), non_terminal("S")),
        rule("S", token("if"), non_terminal("S"), token("else"), non_terminal("S")),
        rule("S", token("x")),
    ]
)

RETURN = Grammar(
    [
        rule("S", token("return"), disallow("LT"), non_terminal("E"), token(";")),
        rule("S", token("return"), token(";")),
        rule("E", token("id")),
    ]
)


def test_nested_table():
    result = ParserGenerator(NESTED, "S").gen_table()
    assert result.ok
    table = result.table

    assert table.goal_symbol == "S"
    assert table.non_terminals == ["S"]
    assert table.production_rules == ["^ -> S", "S -> a S b", "S ->"]
    assert len(table.states) == 5

    empty = Reduce("S", 0, 2)
    assert table.states[0].actions == {"a": Shift(1), "$": empty}
    assert table.states[0].gotos == {"S": 2}
    assert table.states[1].actions == {"a": Shift(1), "b": empty}
    assert table.states[1].gotos == {"S": 3}
    assert table.states[2].actions == {"$": Accept()}
    assert table.states[3].actions == {"b": Shift(4)}
    assert table.states[4].actions == {"b": Reduce("S", 3, 1), "$": Reduce("S", 3, 1)}

    assert table.action(2, "b") == Error()
    assert table.goto(2, "S") is None


def test_nested_parses(parse):
    table = generate(NESTED, "S").table
    assert parse(table, [])
    assert parse(table, ["a", "b"])
    assert parse(table, ["a", "a", "b", "b"])
    assert not parse(table, ["a", "b", "b"])
    assert not parse(table, ["a", "a", "b"])
    assert not parse(table, ["b"])


def test_tail_restriction_splits_reductions(parse):
    grammar = Grammar(
        [
            rule("S", non_terminal("A"), token("y")),
            rule("S", non_terminal("A"), token("z")),
            rule("S", non_terminal("B"), token("y")),
            rule("A", token("x"), lookahead("y", exclude=True)),
            rule("B", token("x")),
        ]
    )
    result = ParserGenerator(grammar, "S").gen_table()
    assert result.conflicts == []

    table = result.table
    after_x = table.states[0].actions["x"]
    assert isinstance(after_x, Shift)
    assert table.states[after_x.state].actions == {
        "y": Reduce("B", 1, 5),
        "z": Reduce("A", 1, 4),
    }

    assert parse(table, ["x", "y"])
    assert parse(table, ["x", "z"])


def test_without_the_restriction_it_conflicts():
    grammar = Grammar(
        [
            rule("S", non_terminal("A"), token("y")),
            rule("S", non_terminal("B"), token("y")),
            rule("A", token("x")),
            rule("B", token("x")),
        ]
    )
    result = ParserGenerator(grammar, "S").gen_table()
    assert len(result.conflicts) == 1
    assert result.conflicts[0].kind == ConflictKind.REDUCE_REDUCE


def test_inner_restriction(parse):
    grammar = Grammar(
        [
            rule("S", lookahead("a", exclude=True), non_terminal("T")),
            rule("T", token("a"), token("b")),
            rule("T", token("c")),
        ]
    )
    result = ParserGenerator(grammar, "S").gen_table()
    assert result.ok
    assert result.table.production_rules == [
        "^ -> S",
        "S -> (?![a]) T",
        "T -> a b",
        "T -> c",
    ]

    assert parse(result.table, ["c"])
    assert not parse(result.table, ["a", "b"])


def test_two_token_restriction(parse):
    grammar = Grammar(
        [
            rule("S", lookahead(("let", "["), exclude=True), non_terminal("T")),
            rule("T", token("let"), token("["), token("]")),
            rule("T", token("let"), token("x")),
        ]
    )
    # Preprocessing uses up the restriction, so a single token is enough.
    generator = ParserGenerator(grammar, "S")
    assert generator.preprocessed_grammar.max_lookahead_tokens() == 0

    for max_tokens in (1, 2):
        table = generate(grammar, "S", max_tokens=max_tokens).table
        assert parse(table, ["let", "x"])
        assert not parse(table, ["let", "[", "]"])


def test_restriction_left_after_preprocessing_must_fit(parse):
    grammar = Grammar(
        [
            rule("R", non_terminal("S"), non_terminal("T")),
            rule("S", lookahead(("a", "b", "c"), exclude=True), token("a")),
            rule("T", token("b"), token("c")),
            rule("T", token("b"), token("d")),
        ]
    )
    # `a` is consumed, leaving a two token restriction at the end of S.
    with pytest.raises(LookaheadBoundError) as e:
        ParserGenerator(grammar, "R", max_tokens=1)
    assert e.value.rules == (grammar.rules()[1],)

    table = generate(grammar, "R", max_tokens=2).table
    assert parse(table, ["a", "b", "d"])


def test_tail_restriction_needing_two_tokens(parse):
    grammar = Grammar([rule("S", token("a"), lookahead(("b", "c"), exclude=True))])
    with pytest.raises(LookaheadBoundError):
        ParserGenerator(grammar, "S", max_tokens=1)

    table = generate(grammar, "S", max_tokens=2).table
    assert parse(table, ["a"])


def test_max_tokens_must_be_positive():
    with pytest.raises(ValueError):
        ParserGenerator(NESTED, "S", max_tokens=0)


def test_shift_wins():
    result = ParserGenerator(DANGLING_ELSE, "S").gen_table()
    assert len(result.conflicts) > 0
    for conflict in result.conflicts:
        assert conflict.kind == ConflictKind.SHIFT_REDUCE
        assert conflict.token == "else"
        assert conflict.kept.startswith("shift else")
        assert conflict.dropped == "reduce S -> if S"

    conflict = result.conflicts[0]
    assert conflict.path == ("if", "S")
    assert isinstance(result.table.action(conflict.state, "else"), Shift)


def test_dangling_else_parses(parse):
    table = generate(DANGLING_ELSE, "S").table
    assert parse(table, ["if", "x"])
    assert parse(table, ["if", "if", "x", "else", "x"])
    assert not parse(table, ["if", "x", "else"])


def test_earlier_rule_wins():
    grammar = Grammar(
        [
            rule("S", non_terminal("B")),
            rule("S", non_terminal("A")),
            rule("B", token("x")),
            rule("A", token("x")),
        ]
    )
    result = ParserGenerator(grammar, "S").gen_table()
    assert len(result.conflicts) == 1

    conflict = result.conflicts[0]
    assert conflict.kind == ConflictKind.REDUCE_REDUCE
    assert conflict.token == "$"
    assert conflict.path == ("x",)
    assert conflict.kept == "reduce B -> x"
    assert conflict.dropped == "reduce A -> x"
    assert result.table.action(conflict.state, "$") == Reduce("B", 1, 3)


def test_no_ambiguity():
    generator = ParserGenerator(DANGLING_ELSE, "S")
    with pytest.raises(AmbiguityError) as e:
        generator.gen_table(no_ambiguity=True)

    assert len(e.value.conflicts) == len(generator.gen_table().conflicts)
    assert "shift/reduce" in str(e.value)


def test_disallowed_token_replaces_state(parse):
    result = ParserGenerator(RETURN, "S", ignore_tokens=["LT"]).gen_table()
    assert result.ok
    table = result.table

    after_return = table.states[0].actions["return"]
    assert isinstance(after_return, Shift)
    replace = table.action(after_return.state, "LT")
    assert isinstance(replace, Replace)
    assert table.action(replace.state, "LT") == Ignore()
    assert "id" not in table.states[replace.state].actions

    assert parse(table, ["return", "id", ";"])
    assert parse(table, ["return", ";"])
    assert parse(table, ["LT", "return", "LT", ";", "LT"])
    assert not parse(table, ["return", "LT", "id", ";"])


def test_fully_disallowed_token_is_an_error(parse):
    grammar = Grammar([rule("S", token("return"), disallow("LT"), token("x"))])
    table = generate(grammar, "S", ignore_tokens=["LT"]).table
    assert parse(table, ["return", "x"])
    assert not parse(table, ["return", "LT", "x"])


def test_ignore_tokens(parse):
    grammar = Grammar([rule("S", token("a"), token("b"))])
    table = generate(grammar, "S", ignore_tokens=["ws"]).table
    for state in table.states:
        assert state.actions["ws"] == Ignore()

    assert parse(table, ["ws", "a", "ws", "b", "ws"])


def test_lexical_goals():
    grammar = Grammar([rule("S", token("a"), token("b"))])
    table = generate(
        grammar,
        "S",
        lexical_goals=[("InputElementRegExp", ["b"])],
        default_lexical_goal="InputElementDiv",
        start_lexical_goal="InputElementHashbangOrRegExp",
    ).table
    assert [state.lexical_goal for state in table.states] == [
        "InputElementHashbangOrRegExp",
        "InputElementRegExp",
        "InputElementDiv",
        "InputElementDiv",
    ]


def test_missing_lookahead_is_a_warning(parse):
    grammar = Grammar(
        [
            rule("S", non_terminal("A"), token("b")),
            rule("A", token("x"), lookahead("b", exclude=True)),
        ]
    )
    result = ParserGenerator(grammar, "S").gen_table()
    missing = [w for w in result.warnings if isinstance(w, MissingLookahead)]
    assert len(missing) == 1
    assert "A -> x (?![b]) ." in missing[0].item
    assert not parse(result.table, ["x", "b"])


def test_unreachable_rules_are_a_warning():
    grammar = Grammar([rule("S", token("a")), rule("U", token("u"))])
    result = ParserGenerator(grammar, "S").gen_table()
    assert result.warnings == [UnreachableNonTerminal("U", "S")]
    assert str(result.warnings[0]) == "U is unreachable from S"
    assert result.warnings[0].to_dict()["kind"] == "unreachable"
    assert result.table.production_rules == ["^ -> S", "S -> a"]


def test_output_is_deterministic():
    first = generate(DANGLING_ELSE, "S").table.to_json()
    second = generate(DANGLING_ELSE, "S").table.to_json()
    assert first == second


def test_workers_do_not_change_the_output():
    grammar = Grammar(
        [
            rule("E", non_terminal("E"), token("+"), non_terminal("T")),
            rule("E", non_terminal("T")),
            rule("T", non_terminal("T"), token("*"), non_terminal("F")),
            rule("T", non_terminal("F")),
            rule("F", token("("), non_terminal("E"), token(")")),
            rule("F", token("id")),
        ]
    )
    serial = generate(grammar, "E").table.to_json()
    parallel = generate(grammar, "E", workers=4).table.to_json()
    assert serial == parallel


def test_table_serialization():
    table = generate(RETURN, "S", ignore_tokens=["LT"]).table
    data = table.to_dict()
    assert data["states"][0]["actions"]["return"]["type"] == "shift"
    assert ParseTable.from_dict(data) == table

    text = table.format()
    assert "accept" in text


def test_conflicts_and_warnings_are_returned_not_logged(caplog):
    grammar = Grammar(
        [
            rule("S", non_terminal("A"), token("b")),
            rule("S", non_terminal("U")),
            rule("A", token("x"), lookahead("b", exclude=True)),
            rule("U", token("if"), non_terminal("U")),
            rule("U", token("if"), non_terminal("U"), token("else"), non_terminal("U")),
            rule("U", token("u")),
            rule("V", token("v")),
        ]
    )
    with caplog.at_level(logging.DEBUG, logger="lalrgen"):
        result = ParserGenerator(grammar, "S").gen_table()

    assert len(result.conflicts) > 0
    assert all(isinstance(w, GrammarWarning) for w in result.warnings)
    assert {type(w) for w in result.warnings} == {UnreachableNonTerminal, MissingLookahead}
    assert [r for r in caplog.records if r.levelno >= logging.WARNING] == []
