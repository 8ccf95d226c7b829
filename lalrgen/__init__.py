"""Generate LALR(k) parse tables for grammars with lookahead restrictions.

The grammars this handles are the kind ECMA-262 is written in: ordinary
context-free productions, plus `[lookahead ∉ {...}]` restrictions anywhere in
a production, plus `[no LineTerminator here]` markers. The output is a table
of shift/reduce/goto actions for a hand-written driver to run.

    from lalrgen import Grammar, ParserGenerator, rule, token, non_terminal

    grammar = Grammar([
        rule("S", token("a"), non_terminal("S"), token("b")),
        rule("S"),
    ])
    result = ParserGenerator(grammar, "S").gen_table()
    print(result.table.format())

The pipeline, one module per stage:

- grammar: the grammar model, validation, the augmented grammar.
- preprocess: moves lookahead restrictions to the ends of rules.
- firstset: FIRST sets, k tokens deep.
- closure: closures of LR items, memoized.
- automaton: the LR(0) automaton.
- lalr: LALR lookaheads for the automaton.
- table: the parse table, and conflict resolution.

`generator.ParserGenerator` runs them all in order; `python -m lalrgen` runs
it over a grammar in a JSON file.
"""

from .automaton import Automaton, State
from .closure import ClosureCache, ClosureContext, LookaheadUnderflowError
from .firstset import FirstSet
from .generator import GeneratorResult, ParserGenerator, generate
from .grammar import (
    GOAL,
    DisallowTerm,
    EmptyTerm,
    Grammar,
    GrammarError,
    GrammarWarning,
    Lookahead,
    LookaheadBoundError,
    LookaheadTerm,
    NonTerminal,
    NonTerminalTerm,
    Rule,
    Symbol,
    Term,
    TokenTerm,
    UnreachableNonTerminal,
    disallow,
    empty,
    lookahead,
    non_terminal,
    rule,
    token,
)
from .lr import LrItem, LrItemSet
from .phrase import END, MARKER, Matched, MatchStatus, Phrase, PhraseSet, Remaining, Unmatched
from .preprocess import preprocess
from .table import (
    Accept,
    AmbiguityError,
    Conflict,
    ConflictKind,
    Error,
    Ignore,
    MissingLookahead,
    ParseAction,
    ParseTable,
    Reduce,
    Replace,
    Shift,
    StateRow,
)
