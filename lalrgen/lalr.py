"""LALR lookaheads for the LR(0) automaton.

This is the classic algorithm from the dragon book (the one that "discovers"
lookaheads rather than building the LR(1) automaton and merging it). For
every kernel item of every state we compute the closure of that item with a
dummy lookahead, the propagation marker `#`. Then, for every item in that
closure:

- If its lookahead ends with `#`, whatever lookahead the kernel item ends up
  with flows through to the item (after the dot moves), with the tokens in
  front of the `#` stuck on the front. That's a *propagation* link.
- Otherwise the lookahead was made up entirely out of the grammar, and the
  item gets it no matter what. That's a *spontaneous generation*.

The start state's kernel gets `$`, the generated lookaheads get dropped into
place, and then we push lookaheads along the propagation links until nothing
changes.

Items whose rule ends in a lookahead restriction only accept lookaheads that
satisfy the restriction; everything else is filtered out on the way in.

The tables are keyed by items over the *input* grammar (not the preprocessed
one), with no lookahead of their own, so that they line up with the states'
`item_set`s.
"""

import concurrent.futures
import dataclasses
import logging
import typing

from .automaton import Automaton, State, symbol_of
from .closure import ClosureCache, ClosureContext, LookaheadUnderflowError
from .firstset import FirstSet
from .grammar import Grammar, Symbol
from .lr import LrItem
from .phrase import END, MARKER, Phrase, PhraseSet

lalr_log = logging.getLogger("lalrgen.lalr")

LookaheadTable = dict[LrItem, PhraseSet]


@dataclasses.dataclass(frozen=True)
class Propagate:
    """Lookaheads of (source_state, source_item), prefixed with `prefix`, flow
    into (target_state, target_item).
    """

    source_state: int
    source_item: LrItem
    prefix: Phrase
    target_state: int
    target_item: LrItem


@dataclasses.dataclass(frozen=True)
class Generate:
    """(target_state, target_item) always gets `lookahead`."""

    source_state: int
    source_item: LrItem
    lookahead: Phrase
    target_state: int
    target_item: LrItem


Operation = Propagate | Generate


class LookaheadBuilder:
    grammar: Grammar
    first_set: FirstSet
    automaton: Automaton
    cache: ClosureCache
    workers: int

    def __init__(
        self,
        grammar: Grammar,
        first_set: FirstSet,
        automaton: Automaton,
        cache: ClosureCache | None = None,
        workers: int = 0,
    ):
        self.grammar = grammar
        self.first_set = first_set
        self.automaton = automaton
        self.cache = cache if cache is not None else ClosureCache()
        self.workers = workers

    @property
    def max_tokens(self) -> int:
        return self.first_set.max_tokens

    def build(self) -> list[LookaheadTable]:
        tables: list[LookaheadTable] = [{} for _ in self.automaton.states]

        start = self.automaton.state(0)
        for item in start.kernel_items():
            tables[0][item] = PhraseSet([Phrase((END,))])

        operations = self.collect_operations()
        lalr_log.debug("collected %d operations", len(operations))

        generates = [op for op in operations if isinstance(op, Generate)]
        propagates = [op for op in operations if isinstance(op, Propagate)]

        for op in generates:
            self._apply(tables, op.target_state, op.target_item, PhraseSet([op.lookahead]))

        iteration = 0
        while True:
            changes = 0
            for op in propagates:
                source = tables[op.source_state].get(op.source_item)
                if source is None:
                    continue
                lookahead_set = PhraseSet([op.prefix]).concat(source, limit=self.max_tokens)
                if self._apply(tables, op.target_state, op.target_item, lookahead_set):
                    changes += 1

            lalr_log.debug("iteration %d: %d changes", iteration, changes)
            if changes == 0:
                break
            iteration += 1

        return tables

    def _apply(
        self,
        tables: list[LookaheadTable],
        state_id: int,
        item: LrItem,
        lookahead_set: PhraseSet,
    ) -> bool:
        """Merge lookaheads into an item's entry, returning True if that
        changed anything. An empty entry counts as a change the first time.
        """
        condition = item.rule.tail_lookahead()
        if condition is not None:
            kept = []
            for phrase in lookahead_set:
                decided = condition.check(phrase)
                if decided is None:
                    raise LookaheadUnderflowError(condition, phrase)
                if decided:
                    kept.append(phrase)
            lookahead_set = PhraseSet(kept)

        table = tables[state_id]
        previous = table.get(item)
        if previous is None:
            table[item] = lookahead_set
            return True

        merged = previous.merge(lookahead_set)
        if merged == previous:
            return False
        table[item] = merged
        return True

    def collect_operations(self) -> list[Operation]:
        """Work out every propagation link and spontaneous lookahead, in state
        order. With workers, states are handled in parallel; the result is the
        same either way.
        """
        states = self.automaton.states
        if self.workers > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
                per_state = list(executor.map(self.collect_state_operations, states))
        else:
            per_state = [self.collect_state_operations(state) for state in states]

        operations: list[Operation] = []
        for state_operations in per_state:
            operations.extend(state_operations)
        return operations

    def collect_state_operations(self, state: State) -> list[Operation]:
        context = ClosureContext(self.grammar, self.first_set, self.cache)
        operations: list[Operation] = []

        marker = Phrase((MARKER,))
        for item in state.internal_kernel_items():
            if item.is_reducible():
                continue

            source_item = item.to_original(self.grammar)
            for temp_item in context.compute_closure_of_item(item.with_lookahead(marker)):
                target_state, target_item = self._target_of(state, temp_item)
                lookahead = temp_item.lookahead
                if lookahead.ends_with_marker():
                    operations.append(
                        Propagate(
                            source_state=state.id,
                            source_item=source_item,
                            prefix=Phrase(lookahead.tokens[:-1]),
                            target_state=target_state,
                            target_item=target_item,
                        )
                    )
                else:
                    operations.append(
                        Generate(
                            source_state=state.id,
                            source_item=source_item,
                            lookahead=lookahead,
                            target_state=target_state,
                            target_item=target_item,
                        )
                    )

        operations.extend(self._restricted_operations(context, state))
        return operations

    def _target_of(self, state: State, temp_item: LrItem) -> tuple[int, LrItem]:
        """Where the lookahead of an item in a closure ends up: on the item
        itself if it reduces here, otherwise on the item with the dot moved,
        in whatever state the move leads to.
        """
        if temp_item.is_reducible():
            target_item = temp_item.without_lookahead().to_original(self.grammar)
            assert target_item in state.item_set, str(target_item)
            return state.id, target_item

        target_item = temp_item.without_lookahead().shift().to_original(self.grammar)
        symbol = symbol_of(temp_item.next_term())
        if symbol is None:
            return state.id, target_item

        next_id = state.transitions[symbol]
        assert target_item in self.automaton.state(next_id).item_set, str(target_item)
        return next_id, target_item

    def _restricted_operations(self, context: ClosureContext, state: State) -> list[Operation]:
        """Lookaheads of items that survive a [no X here] transition carry
        over to the state on the other side of it.
        """
        if not state.is_restricted():
            return []

        operations: list[Operation] = []
        for token in state.collect_disallowed_tokens():
            kernel_items = [
                item for item in state.internal_kernel_items() if not item.is_disallowed(token)
            ]
            if not kernel_items:
                continue

            item_set = context.compute_closure(kernel_items).to_original(self.grammar)
            next_id = state.transitions[Symbol.token(token)]
            for item in item_set:
                operations.append(
                    Propagate(
                        source_state=state.id,
                        source_item=item,
                        prefix=Phrase(),
                        target_state=next_id,
                        target_item=item,
                    )
                )
        return operations

    def to_report(self, tables: list[LookaheadTable]) -> list[dict[str, typing.Any]]:
        return [
            {
                "state": i,
                "entries": [
                    {"item": str(item), "lookaheads": [str(p) for p in lookahead_set]}
                    for item, lookahead_set in sorted(table.items(), key=lambda e: e[0].sort_key)
                ],
            }
            for i, table in enumerate(tables)
        ]
