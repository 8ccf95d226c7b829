import typing

import pytest

from lalrgen import Accept, Ignore, ParseTable, Reduce, Replace, Shift


def drive(table: ParseTable, tokens: typing.Sequence[str]) -> bool:
    """Run a table over a list of tokens the way a syntax driver would, and
    return whether the input was accepted.

    A Replace switches the state on top of the stack and consumes the token
    (the token is the one a [no X here] marker is about, which is otherwise
    trivia).
    """
    stack = [0]
    input_tokens = list(tokens) + ["$"]
    index = 0
    for _ in range(10_000):
        token = input_tokens[index]
        action = table.action(stack[-1], token)
        match action:
            case Shift(state=state):
                stack.append(state)
                index += 1
            case Replace(state=state):
                stack[-1] = state
                index += 1
            case Ignore():
                index += 1
            case Reduce(non_terminal=non_terminal, count=count):
                if count > 0:
                    del stack[-count:]
                goto = table.goto(stack[-1], non_terminal)
                assert goto is not None, f"no goto for {non_terminal} in state {stack[-1]}"
                stack.append(goto)
            case Accept():
                return True
            case _:
                return False

    raise AssertionError("the driver went around in circles")


@pytest.fixture
def parse():
    return drive
