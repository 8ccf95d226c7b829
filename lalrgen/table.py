"""Turning an automaton and its lookaheads into a parse table.

The table is a list of states. Each state has a dictionary that maps a token
to an action, and a dictionary that maps a non-terminal to the state to go
to after reducing to it. Actions are:

- `Shift(state)`: consume the token and push the state.
- `Replace(state)`: the token is one a [no X here] marker forbids. Switch
  the top of the stack to the state (which is the state without the
  restricted items in it) and carry on.
- `Reduce(non_terminal, count, rule)`: pop `count` states, then look up the
  goto for `non_terminal` in the new top state. `rule` is the index of the
  rule in `production_rules`.
- `Accept`: the parse worked.
- `Ignore`: skip the token; it's trivia here.

Anything missing from the row is an error.

Conflicts are resolved here, once, and never at parse time: a shift beats a
reduce, and between two reduces the rule declared first in the grammar wins.
Every conflict is recorded, and the caller decides whether that's OK.
"""

import dataclasses
import enum
import json
import logging
import typing

from .automaton import Automaton, State
from .grammar import Grammar, GrammarWarning, Rule
from .lalr import LookaheadTable
from .lr import LrItem
from .phrase import END

table_log = logging.getLogger("lalrgen.table")


@dataclasses.dataclass
class Action:
    pass


@dataclasses.dataclass
class Reduce(Action):
    non_terminal: str
    count: int
    rule: int


@dataclasses.dataclass
class Shift(Action):
    state: int


@dataclasses.dataclass
class Replace(Action):
    state: int


@dataclasses.dataclass
class Accept(Action):
    pass


@dataclasses.dataclass
class Ignore(Action):
    pass


@dataclasses.dataclass
class Error(Action):
    pass


ParseAction = Reduce | Shift | Replace | Accept | Ignore | Error


def action_to_descriptor(action: ParseAction) -> dict[str, typing.Any]:
    match action:
        case Accept():
            return {"type": "accept"}
        case Shift(state=state):
            return {"type": "shift", "data": state}
        case Replace(state=state):
            return {"type": "replace", "data": state}
        case Reduce(non_terminal=non_terminal, count=count, rule=rule):
            return {
                "type": "reduce",
                "data": {"non_terminal": non_terminal, "count": count, "rule": rule},
            }
        case Ignore():
            return {"type": "ignore"}
        case Error():
            return {"type": "error"}
        case _:
            raise ValueError(f"unknown action type {action}")


def action_from_descriptor(descriptor: dict[str, typing.Any]) -> ParseAction:
    data = descriptor.get("data")
    match descriptor.get("type"):
        case "accept":
            return Accept()
        case "shift":
            return Shift(data)
        case "replace":
            return Replace(data)
        case "reduce":
            return Reduce(data["non_terminal"], data["count"], data["rule"])
        case "ignore":
            return Ignore()
        case "error":
            return Error()
        case kind:
            raise ValueError(f"unknown action type {kind!r}")


###############################################################################
# Diagnostics
###############################################################################
class ConflictKind(enum.Enum):
    SHIFT_REDUCE = "shift/reduce"
    REDUCE_REDUCE = "reduce/reduce"


@dataclasses.dataclass(frozen=True)
class Conflict:
    """Two actions wanted the same token in the same state. `kept` is the one
    that went into the table.
    """

    kind: ConflictKind
    state: int
    token: str
    path: typing.Tuple[str, ...]
    kept: str
    dropped: str
    kernel_items: typing.Tuple[str, ...]

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "kind": self.kind.value,
            "state": self.state,
            "token": self.token,
            "path": list(self.path),
            "kept": self.kept,
            "dropped": self.dropped,
            "kernel_items": list(self.kernel_items),
        }

    def __str__(self):
        lines = [
            f"{self.kind.value} conflict in state {self.state}: when we have parsed "
            f"'{' '.join(self.path)}' and see '{self.token}' we could:",
            f"- {self.kept} (chosen)",
            f"- {self.dropped}",
        ]
        return "\n".join(lines)


@dataclasses.dataclass(frozen=True)
class MissingLookahead(GrammarWarning):
    """A reducible item ended up with no lookahead at all, so it can never be
    reduced. Usually a sign of a restriction that filters out everything.
    """

    state: int
    item: str

    def to_dict(self) -> dict[str, typing.Any]:
        return {"kind": "no-lookahead", "state": self.state, "item": self.item}

    def __str__(self):
        return f"No lookahead for {self.item} in state {self.state}; it will never be reduced"


class AmbiguityError(Exception):
    conflicts: list[Conflict]

    def __init__(self, conflicts):
        self.conflicts = conflicts

    def __str__(self):
        return f"{len(self.conflicts)} ambiguities:\n\n" + "\n\n".join(
            str(conflict) for conflict in self.conflicts
        )


###############################################################################
# Tables
###############################################################################
@dataclasses.dataclass
class StateRow:
    id: int
    actions: dict[str, ParseAction]
    gotos: dict[str, int]
    kernel_items: list[str]
    lexical_goal: str | None = None

    def to_dict(self) -> dict[str, typing.Any]:
        result: dict[str, typing.Any] = {
            "id": self.id,
            "actions": {
                token: action_to_descriptor(action) for token, action in sorted(self.actions.items())
            },
            "goto": dict(sorted(self.gotos.items())),
            "kernel_items": list(self.kernel_items),
        }
        if self.lexical_goal is not None:
            result["lexical_goal"] = self.lexical_goal
        return result


@dataclasses.dataclass
class ParseTable:
    goal_symbol: str
    non_terminals: list[str]
    production_rules: list[str]
    states: list[StateRow]

    def action(self, state: int, token: str) -> ParseAction:
        return self.states[state].actions.get(token, Error())

    def goto(self, state: int, non_terminal: str) -> int | None:
        return self.states[state].gotos.get(non_terminal)

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "goal_symbol": self.goal_symbol,
            "non_terminals": list(self.non_terminals),
            "production_rules": list(self.production_rules),
            "states": [state.to_dict() for state in self.states],
        }

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict[str, typing.Any]) -> "ParseTable":
        return cls(
            goal_symbol=data["goal_symbol"],
            non_terminals=list(data["non_terminals"]),
            production_rules=list(data["production_rules"]),
            states=[
                StateRow(
                    id=state["id"],
                    actions={
                        token: action_from_descriptor(action)
                        for token, action in state["actions"].items()
                    },
                    gotos=dict(state["goto"]),
                    kernel_items=list(state.get("kernel_items", [])),
                    lexical_goal=state.get("lexical_goal"),
                )
                for state in data["states"]
            ],
        )

    def format(self) -> str:
        """Format a parser table so pretty."""

        def format_action(actions: dict[str, ParseAction], terminal: str):
            action = actions.get(terminal)
            match action:
                case Accept():
                    return "accept"
                case Shift(state=state):
                    return f"s{state}"
                case Replace(state=state):
                    return f"x{state}"
                case Reduce(rule=rule):
                    return f"r{rule}"
                case Ignore():
                    return "-"
                case _:
                    return ""

        def format_goto(gotos: dict[str, int], nt: str):
            index = gotos.get(nt)
            if index is None:
                return ""
            else:
                return str(index)

        terminals = list(sorted({k for row in self.states for k in row.actions.keys()}))
        nonterminals = list(sorted({k for row in self.states for k in row.gotos.keys()}))

        header = "     | {terms} | {nts}".format(
            terms=" ".join(f"{terminal: <6}" for terminal in terminals),
            nts=" ".join(f"{nt: <5}" for nt in nonterminals),
        )

        lines = [
            header,
            "-" * len(header),
        ] + [
            "{index: <4} | {actions} | {gotos}".format(
                index=row.id,
                actions=" ".join(
                    "{0: <6}".format(format_action(row.actions, terminal)) for terminal in terminals
                ),
                gotos=" ".join("{0: <5}".format(format_goto(row.gotos, nt)) for nt in nonterminals),
            )
            for row in self.states
        ]
        return "\n".join(lines)


class TableBuilder(object):
    """A helper object to assemble actions into parse tables.

    Call `new_row` at the start of each state's row, set the actions and
    gotos, and `flush` when you're done with the last one.
    """

    automaton: Automaton
    rule_index: dict[Rule, int]
    ignore_tokens: typing.Tuple[str, ...]
    lexical_goals: typing.Tuple[typing.Tuple[str, typing.Tuple[str, ...]], ...]
    default_lexical_goal: str | None
    start_lexical_goal: str | None

    conflicts: list[Conflict]
    warnings: list[MissingLookahead]
    rows: list[StateRow]

    # For every token in the current row, the action and the rank of the rule
    # it came from (shifts don't have one).
    action_row: None | dict[str, typing.Tuple[ParseAction, int | None, str]]
    goto_row: None | dict[str, int]
    current_state: None | State

    def __init__(
        self,
        automaton: Automaton,
        rules: typing.Sequence[Rule],
        ignore_tokens: typing.Iterable[str] = (),
        lexical_goals: typing.Sequence[typing.Tuple[str, typing.Sequence[str]]] = (),
        default_lexical_goal: str | None = None,
        start_lexical_goal: str | None = None,
    ):
        self.automaton = automaton
        self.rule_index = {rule: i for i, rule in enumerate(rules)}
        self.ignore_tokens = tuple(sorted(set(ignore_tokens)))
        self.lexical_goals = tuple((goal, tuple(tokens)) for goal, tokens in lexical_goals)
        self.default_lexical_goal = default_lexical_goal
        self.start_lexical_goal = start_lexical_goal

        self.conflicts = []
        self.warnings = []
        self.rows = []
        self.action_row = None
        self.goto_row = None
        self.current_state = None

    def new_row(self, state: State):
        """Start a new row for the given state. Call this before doing
        anything else.
        """
        self._flush_row()
        self.action_row = {}
        self.goto_row = {}
        self.current_state = state

    def flush(self) -> list[StateRow]:
        self._flush_row()
        return self.rows

    def _flush_row(self):
        if self.current_state is None:
            return
        assert self.action_row is not None
        assert self.goto_row is not None

        actions = {token: entry[0] for token, entry in self.action_row.items()}
        lexical_goal = self._lexical_goal(self.current_state, actions)
        for token in self.ignore_tokens:
            if token not in actions:
                actions[token] = Ignore()

        self.rows.append(
            StateRow(
                id=self.current_state.id,
                actions=actions,
                gotos=dict(self.goto_row),
                kernel_items=[str(item) for item in self.current_state.kernel_items()],
                lexical_goal=lexical_goal,
            )
        )
        self.current_state = None
        self.action_row = None
        self.goto_row = None

    def _lexical_goal(self, state: State, actions: dict[str, ParseAction]) -> str | None:
        if state.id == 0 and self.start_lexical_goal is not None:
            return self.start_lexical_goal
        for goal, tokens in self.lexical_goals:
            if all(token in actions for token in tokens):
                return goal
        return self.default_lexical_goal

    def set_table_shift(self, token: str, index: int):
        self._set_table_action(token, Shift(index), None, f"shift {token} and go to {index}")

    def set_table_replace(self, token: str, index: int):
        self._set_table_action(token, Replace(index), None, f"replace the state with {index}")

    def set_table_reduce(self, token: str, item: LrItem):
        rule = item.rule
        rank = self.rule_index[rule]
        action = Reduce(rule.name.symbol, rule.count_symbols(), rank)
        self._set_table_action(token, action, rank, f"reduce {rule}")

    def set_table_accept(self, token: str, item: LrItem):
        rank = self.rule_index[item.rule]
        self._set_table_action(token, Accept(), rank, "accept the parse")

    def set_table_goto(self, non_terminal: str, index: int):
        """Set the goto for the given non-terminal in the current row."""
        assert self.goto_row is not None
        assert non_terminal not in self.goto_row
        self.goto_row[non_terminal] = index

    def add_missing_lookahead(self, item: LrItem):
        assert self.current_state is not None
        warning = MissingLookahead(self.current_state.id, str(item))
        table_log.info("%s", warning)
        self.warnings.append(warning)

    def _set_table_action(self, token: str, action: ParseAction, rank: int | None, text: str):
        """Set the action for `token` in the current row, resolving (and
        recording) any conflict with an action that's already there.
        """
        assert self.action_row is not None
        existing = self.action_row.get(token)
        if existing is None:
            self.action_row[token] = (action, rank, text)
            return

        existing_action, existing_rank, existing_text = existing
        if existing_action == action:
            return

        if existing_rank is None or rank is None:
            # A shift is involved, and shifting wins.
            if existing_rank is None:
                self._record(ConflictKind.SHIFT_REDUCE, token, existing_text, text)
                return
            self._record(ConflictKind.SHIFT_REDUCE, token, text, existing_text)
            self.action_row[token] = (action, rank, text)
            return

        if existing_rank <= rank:
            self._record(ConflictKind.REDUCE_REDUCE, token, existing_text, text)
        else:
            self._record(ConflictKind.REDUCE_REDUCE, token, text, existing_text)
            self.action_row[token] = (action, rank, text)

    def _record(self, kind: ConflictKind, token: str, kept: str, dropped: str):
        state = self.current_state
        assert state is not None
        path = tuple(str(symbol) for symbol in self.automaton.find_path_to_state(state.id))
        conflict = Conflict(
            kind=kind,
            state=state.id,
            token=token,
            path=path,
            kept=kept,
            dropped=dropped,
            kernel_items=tuple(str(item) for item in state.kernel_items()),
        )
        if table_log.isEnabledFor(logging.INFO):
            table_log.info("%s", conflict)
        self.conflicts.append(conflict)


def build_table(
    grammar: Grammar,
    automaton: Automaton,
    lookahead_tables: list[LookaheadTable],
    goal_symbol: str,
    ignore_tokens: typing.Iterable[str] = (),
    lexical_goals: typing.Sequence[typing.Tuple[str, typing.Sequence[str]]] = (),
    default_lexical_goal: str | None = None,
    start_lexical_goal: str | None = None,
) -> tuple[ParseTable, list[Conflict], list[MissingLookahead]]:
    """Build the parse table for an automaton over an augmented grammar.

    `grammar` is the augmented grammar *before* preprocessing: its rules are
    the ones the states' item sets refer to, and their order is the order
    reduce/reduce conflicts are settled by.
    """
    rules = grammar.rules()
    builder = TableBuilder(
        automaton,
        rules,
        ignore_tokens=ignore_tokens,
        lexical_goals=lexical_goals,
        default_lexical_goal=default_lexical_goal,
        start_lexical_goal=start_lexical_goal,
    )

    for state in automaton.states:
        builder.new_row(state)
        disallowed = set(state.collect_disallowed_tokens())

        for symbol, next_id in state.transitions.items():
            if symbol.is_non_terminal:
                builder.set_table_goto(symbol.name, next_id)
            elif symbol.name in disallowed:
                builder.set_table_replace(symbol.name, next_id)
            else:
                builder.set_table_shift(symbol.name, next_id)

        lookaheads = lookahead_tables[state.id]
        for item in state.item_set:
            if not item.is_reducible():
                continue

            lookahead_set = lookaheads.get(item)
            if lookahead_set is None:
                builder.add_missing_lookahead(item)
                continue

            for phrase in lookahead_set:
                if not phrase:
                    continue
                token = phrase[0]
                if token == END and item.rule.is_goal:
                    builder.set_table_accept(token, item)
                else:
                    builder.set_table_reduce(token, item)

    non_terminals = sorted({str(rule.name) for rule in rules if not rule.is_goal})
    table = ParseTable(
        goal_symbol=goal_symbol,
        non_terminals=non_terminals,
        production_rules=[str(rule) for rule in rules],
        states=builder.flush(),
    )
    return table, builder.conflicts, builder.warnings
