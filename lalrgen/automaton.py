import collections
import dataclasses
import logging
import typing

from .closure import ClosureCache, ClosureContext
from .firstset import FirstSet
from .grammar import (
    DisallowTerm,
    Grammar,
    NonTerminalTerm,
    Symbol,
    Term,
    TokenTerm,
)
from .lr import LrItem, LrItemSet

automaton_log = logging.getLogger("lalrgen.automaton")


def symbol_of(term: Term | None) -> Symbol | None:
    """The symbol an item moves over, or None if it moves without one.

    Variants are the same symbol as the non-terminal they were made from.
    """
    match term:
        case TokenTerm(token=token):
            return Symbol.token(token)
        case NonTerminalTerm(non_terminal=non_terminal):
            return Symbol.non_terminal(non_terminal.symbol)
    return None


@dataclasses.dataclass
class State:
    """A state of the LR(0) automaton.

    A state carries two item sets. `internal_item_set` is the closure as it
    was computed, over the preprocessed grammar, with variant rules and all;
    it's what we use for further closure computations. `item_set` is the
    same set mapped back onto the input grammar, and is what identifies the
    state. Two states whose internal sets differ only in which variants they
    use are the same state.
    """

    id: int
    item_set: LrItemSet
    internal_item_set: LrItemSet
    transitions: dict[Symbol, int] = dataclasses.field(default_factory=dict)

    def kernel_items(self) -> list[LrItem]:
        return self.item_set.kernel_items()

    def non_kernel_items(self) -> list[LrItem]:
        return self.item_set.non_kernel_items()

    def internal_kernel_items(self) -> list[LrItem]:
        return self.internal_item_set.kernel_items()

    def internal_non_kernel_items(self) -> list[LrItem]:
        return self.internal_item_set.non_kernel_items()

    def is_dead(self) -> bool:
        return len(self.item_set) == 0

    def is_restricted(self) -> bool:
        return any(item.is_restricted() for item in self.kernel_items())

    def collect_disallowed_tokens(self) -> list[str]:
        """The tokens forbidden by [no X here] markers right after the dot of
        some kernel item, sorted.
        """
        tokens = set()
        for item in self.kernel_items():
            term = item.next_term()
            if isinstance(term, DisallowTerm):
                tokens.add(term.token)
        return sorted(tokens)

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "state": self.id,
            "kernel_items": [str(item) for item in self.internal_kernel_items()],
            "non_kernel_items": [str(item) for item in self.internal_non_kernel_items()],
            "transitions": [
                {"symbol": str(symbol), "next_state": next_id}
                for symbol, next_id in self.transitions.items()
            ],
        }


class StateBuilder:
    def __init__(self, grammar: Grammar):
        self.grammar = grammar
        self.states: list[State] = []
        self.item_set_map: dict[LrItemSet, int] = {}

    def create_state(self, internal_item_set: LrItemSet) -> tuple[int, bool]:
        """Find or make the state for an item set. Returns the id, and whether
        the state is new.
        """
        item_set = internal_item_set.to_original(self.grammar)
        state_id = self.item_set_map.get(item_set)
        if state_id is not None:
            return state_id, False

        state_id = len(self.states)
        self.item_set_map[item_set] = state_id
        self.states.append(State(state_id, item_set, internal_item_set))
        if automaton_log.isEnabledFor(logging.DEBUG):
            automaton_log.debug("created state %d: %s", state_id, internal_item_set)
        return state_id, True


@dataclasses.dataclass
class Automaton:
    """The LR(0) automaton. State 0 is always the start state."""

    states: list[State]

    @classmethod
    def from_grammar(
        cls,
        grammar: Grammar,
        first_set: FirstSet,
        cache: ClosureCache | None = None,
    ) -> "Automaton":
        """Build the automaton for an augmented, preprocessed grammar.

        This is the usual worklist: close the start item, then for every state
        group its items by the symbol after the dot, move the dot over that
        symbol, close the result, and find or make the state for it. Symbols
        are visited in sorted order, so state numbers come out the same every
        time.

        States with [no X here] markers also get a transition on X, to a state
        made of the kernel items that don't care about X. If every kernel item
        cares, the transition goes to a dead state with no items at all, so
        the table can tell "X is an error here" apart from "X is ignorable".
        """
        goal_rules = grammar.goal_rules()
        assert len(goal_rules) > 0, "the grammar is not augmented"

        context = ClosureContext(grammar, first_set, cache)
        builder = StateBuilder(grammar)

        start = context.compute_closure([LrItem(rule, 0) for rule in goal_rules])
        start_id, _ = builder.create_state(start)

        queue = collections.deque([start_id])
        processed: set[int] = set()
        while queue:
            state_id = queue.popleft()
            if state_id in processed:
                continue
            processed.add(state_id)
            state = builder.states[state_id]

            automaton_log.debug("processing state %d, %d remaining", state_id, len(queue))

            next_kernels: dict[Symbol, list[LrItem]] = {}
            for item in state.internal_item_set:
                symbol = symbol_of(item.next_term())
                if symbol is None:
                    continue
                next_kernels.setdefault(symbol, []).append(item.shift())

            for symbol in sorted(next_kernels):
                item_set = context.compute_closure(next_kernels[symbol])
                next_id, _ = builder.create_state(item_set)
                state.transitions[symbol] = next_id
                if next_id not in processed:
                    queue.append(next_id)

            for token in state.collect_disallowed_tokens():
                kernel_items = [
                    item for item in state.internal_kernel_items() if not item.is_disallowed(token)
                ]
                if kernel_items:
                    item_set = context.compute_closure(kernel_items)
                else:
                    item_set = LrItemSet()

                next_id, _ = builder.create_state(item_set)
                state.transitions[Symbol.token(token)] = next_id
                if kernel_items and next_id not in processed:
                    queue.append(next_id)

        return cls(states=builder.states)

    def __len__(self) -> int:
        return len(self.states)

    def state(self, state_id: int) -> State:
        return self.states[state_id]

    def find_path_to_state(self, target: int) -> list[Symbol]:
        """Trace the symbols that lead from the start state to the target
        state. Useful in conflict reports, where we are *at* a state and want
        to say how we got there.

        Raises KeyError if the state can't be reached.
        """
        visited = set()
        queue: collections.deque = collections.deque()
        queue.appendleft((0, []))
        while len(queue) > 0:
            state_id, path = queue.pop()
            if state_id == target:
                return path

            if state_id in visited:
                continue
            visited.add(state_id)

            for symbol, successor in self.states[state_id].transitions.items():
                queue.appendleft((successor, path + [symbol]))

        raise KeyError(f"Unable to find a path to state {target}")

    def to_dict(self) -> dict[str, typing.Any]:
        return {"start": 0, "states": [state.to_dict() for state in self.states]}
