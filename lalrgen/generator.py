import dataclasses
import json
import logging
import os
import typing

from .automaton import Automaton
from .closure import ClosureCache
from .firstset import FirstSet
from .grammar import Grammar, GrammarWarning, LookaheadBoundError, UnreachableNonTerminal
from .lalr import LookaheadBuilder, LookaheadTable
from .preprocess import preprocess
from .table import AmbiguityError, Conflict, ParseTable, build_table

generator_log = logging.getLogger("lalrgen.generator")


@dataclasses.dataclass
class GeneratorResult:
    """A finished table, plus everything that went wrong along the way that
    wasn't bad enough to stop us.
    """

    table: ParseTable
    conflicts: list[Conflict]
    warnings: list[GrammarWarning]

    @property
    def ok(self) -> bool:
        return len(self.conflicts) == 0


class ParserGenerator:
    """Generate LALR(k) parse tables for grammars with ECMA-262 style
    lookahead restrictions.

    Construct it with the grammar, the name of the goal symbol, and the
    options; then call `gen_table`. In between, every stage of the pipeline is
    available on its own (`augmented_grammar`, `preprocessed_grammar`,
    `gen_first_set`, `gen_automaton`, `gen_lookahead_tables`), which is handy
    for debugging a grammar and is what the reports are built from.

    Options:

    - max_tokens: k, the number of lookahead tokens. Lookahead restrictions
      may not be longer than this.
    - ignore_tokens: tokens that get an Ignore action in every state that
      doesn't otherwise act on them (whitespace, comments, line terminators).
    - lexical_goals: an ordered list of (goal, tokens). A state's lexical goal
      is the first goal all of whose tokens it acts on, or
      default_lexical_goal if none match. The start state always gets
      start_lexical_goal, if one is given.
    - prune_unreachable: if False, rules unreachable from the goal are an
      error instead of being dropped.
    - workers: if more than one, lookahead collection runs on a thread pool
      of this size. The output doesn't change.
    """

    grammar: Grammar
    goal: str
    max_tokens: int

    def __init__(
        self,
        grammar: Grammar,
        goal: str,
        max_tokens: int = 1,
        ignore_tokens: typing.Iterable[str] = (),
        lexical_goals: typing.Sequence[typing.Tuple[str, typing.Sequence[str]]] = (),
        default_lexical_goal: str | None = None,
        start_lexical_goal: str | None = None,
        prune_unreachable: bool = True,
        workers: int = 0,
    ):
        if max_tokens < 1:
            raise ValueError(f"max_tokens must be at least 1, not {max_tokens}")

        grammar.validate()

        self.grammar = grammar
        self.goal = goal
        self.max_tokens = max_tokens
        self.ignore_tokens = tuple(ignore_tokens)
        self.lexical_goals = tuple(lexical_goals)
        self.default_lexical_goal = default_lexical_goal
        self.start_lexical_goal = start_lexical_goal
        self.workers = workers

        self.warnings: list[GrammarWarning] = []
        if prune_unreachable:
            for non_terminal in grammar.unreachable_from(goal):
                self.warnings.append(UnreachableNonTerminal(str(non_terminal), goal))

        self.augmented_grammar = grammar.create_augmented_grammar(
            goal, prune_unreachable=prune_unreachable
        )

        self.preprocessed_grammar = preprocess(self.augmented_grammar)
        generator_log.debug(
            "%d rules, %d after preprocessing",
            len(self.augmented_grammar),
            len(self.preprocessed_grammar),
        )

        # Preprocessing consumes inner restrictions token by token, so only
        # what is left afterwards has to fit in k.
        too_long = self.preprocessed_grammar.rules_needing_more_than(max_tokens)
        if too_long:
            originals = dict.fromkeys(
                self.preprocessed_grammar.to_original_rule(rule) for rule in too_long
            )
            raise LookaheadBoundError(max_tokens, list(originals))

        self.cache = ClosureCache()
        self._first_set: FirstSet | None = None
        self._automaton: Automaton | None = None
        self._lookahead_tables: list[LookaheadTable] | None = None

    def gen_first_set(self) -> FirstSet:
        if self._first_set is None:
            self._first_set = FirstSet.from_grammar(self.preprocessed_grammar, self.max_tokens)
        return self._first_set

    def gen_automaton(self) -> Automaton:
        if self._automaton is None:
            self._automaton = Automaton.from_grammar(
                self.preprocessed_grammar, self.gen_first_set(), self.cache
            )
            generator_log.info("%d states", len(self._automaton))
        return self._automaton

    def gen_lookahead_tables(self) -> list[LookaheadTable]:
        if self._lookahead_tables is None:
            builder = LookaheadBuilder(
                self.preprocessed_grammar,
                self.gen_first_set(),
                self.gen_automaton(),
                self.cache,
                workers=self.workers,
            )
            self._lookahead_tables = builder.build()
        return self._lookahead_tables

    def gen_table(self, no_ambiguity: bool = False) -> GeneratorResult:
        """Generate the parse table.

        Conflicts are settled by the fixed policy (shift wins, then the
        earlier rule) and returned alongside the table. With `no_ambiguity`,
        any conflict at all raises an AmbiguityError listing every one of
        them instead.
        """
        table, conflicts, warnings = build_table(
            self.augmented_grammar,
            self.gen_automaton(),
            self.gen_lookahead_tables(),
            self.goal,
            ignore_tokens=self.ignore_tokens,
            lexical_goals=self.lexical_goals,
            default_lexical_goal=self.default_lexical_goal,
            start_lexical_goal=self.start_lexical_goal,
        )
        if conflicts:
            generator_log.info("%d conflicts", len(conflicts))
            if no_ambiguity:
                raise AmbiguityError(conflicts)

        return GeneratorResult(
            table=table,
            conflicts=conflicts,
            warnings=self.warnings + warnings,
        )

    def write_reports(self, directory: str, result: GeneratorResult | None = None):
        """Dump the intermediate results of every stage as JSON files into
        `directory`, for debugging a grammar.
        """
        os.makedirs(directory, exist_ok=True)

        def dump(name: str, value: typing.Any):
            path = os.path.join(directory, name)
            with open(path, "w", encoding="utf-8") as file:
                json.dump(value, file, indent=2)
            generator_log.debug("wrote %s", path)

        dump(
            "preprocessed.json",
            [
                {
                    "name": str(rule.name),
                    "production": " ".join(str(term) for term in rule.production),
                }
                for rule in self.preprocessed_grammar.rules()
            ],
        )
        dump("first_set.json", self.gen_first_set().to_dict())
        dump("lr0_automaton.json", self.gen_automaton().to_dict())

        builder = LookaheadBuilder(
            self.preprocessed_grammar, self.gen_first_set(), self.gen_automaton(), self.cache
        )
        dump("lalr_lookahead_tables.json", builder.to_report(self.gen_lookahead_tables()))

        if result is not None:
            problems = [conflict.to_dict() for conflict in result.conflicts]
            problems.extend(warning.to_dict() for warning in result.warnings)
            dump("problems.json", problems)


def generate(
    grammar: Grammar,
    goal: str,
    max_tokens: int = 1,
    no_ambiguity: bool = False,
    **kwargs,
) -> GeneratorResult:
    """Build a table in one call. See ParserGenerator for the options."""
    return ParserGenerator(grammar, goal, max_tokens=max_tokens, **kwargs).gen_table(
        no_ambiguity=no_ambiguity
    )
