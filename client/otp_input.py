"""
Six-cell OTP input. Each cell holds '' or one digit; ``focus`` is the index
of the focused cell.
"""
from dataclasses import dataclass, replace
from typing import Tuple

CELL_COUNT = 6
DIGITS = '0123456789'


class IncompleteCode(ValueError):
    """Submit with fewer than six filled cells; rejected before calling verify."""


@dataclass(frozen=True)
class OtpInput:
    cells: Tuple[str, ...] = ('',) * CELL_COUNT
    focus: int = 0

    @property
    def code(self):
        return ''.join(self.cells)

    @property
    def is_complete(self):
        return all(self.cells)


def _set_cell(state, index, value):
    cells = list(state.cells)
    cells[index] = value
    return tuple(cells)


def type_digit(state, char):
    """Fill the focused cell and move to the next one. Anything but one digit is ignored."""
    if len(char) != 1 or char not in DIGITS:
        return state
    return OtpInput(
        cells=_set_cell(state, state.focus, char),
        focus=min(state.focus + 1, CELL_COUNT - 1),
    )


def backspace(state):
    if state.cells[state.focus]:
        return replace(state, cells=_set_cell(state, state.focus, ''))
    if state.focus == 0:
        return state
    previous = state.focus - 1
    return OtpInput(cells=_set_cell(state, previous, ''), focus=previous)


def arrow_left(state):
    return replace(state, focus=max(state.focus - 1, 0))


def arrow_right(state):
    return replace(state, focus=min(state.focus + 1, CELL_COUNT - 1))


def focus_cell(state, index):
    if not 0 <= index < CELL_COUNT:
        return state
    return replace(state, focus=index)


def paste(state, text):
    """
    Keep only the digits of text. Exactly six digits fill every cell and
    focus the last one; any other count leaves the input unchanged.
    """
    digits = ''.join(c for c in text or '' if c in DIGITS)
    if len(digits) != CELL_COUNT:
        return state
    return OtpInput(cells=tuple(digits), focus=CELL_COUNT - 1)


def clear(state=None):
    return OtpInput()


KEY_HANDLERS = {
    'Backspace': backspace,
    'ArrowLeft': arrow_left,
    'ArrowRight': arrow_right,
}


def handle_key(state, key):
    """Dispatch a keydown by its key name ('3', 'Backspace', 'ArrowLeft', ...)."""
    handler = KEY_HANDLERS.get(key)
    if handler is not None:
        return handler(state)
    return type_digit(state, key)


def submit(state):
    if not state.is_complete:
        raise IncompleteCode('Please enter the complete 6-digit code')
    return state.code
