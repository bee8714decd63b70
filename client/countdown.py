"""
Countdown to OTP expiry.

IDLE -> COUNTING -> EXPIRED | CANCELLED

Times are client clock milliseconds. The deadline is derived from the
server's expiresIn, never from a TTL assumed on the client. Each start or
cancel bumps ``generation``; the view tags its interval with the generation
it was started for and ticks from an older generation are ignored, so two
timers can never drive the same display.
"""
from dataclasses import dataclass, replace
from typing import Optional

IDLE = 'idle'
COUNTING = 'counting'
EXPIRED = 'expired'
CANCELLED = 'cancelled'

TICK_MS = 1000
URGENT_MS = 60 * 1000


@dataclass(frozen=True)
class Countdown:
    phase: str = IDLE
    expires_at_ms: Optional[int] = None
    remaining_ms: int = 0
    generation: int = 0

    @property
    def resend_enabled(self):
        return self.phase == EXPIRED


def start(state, expires_in_seconds, now_ms):
    """Enter COUNTING for a freshly issued or resent code, superseding any earlier timer."""
    expires_at = now_ms + int(expires_in_seconds * 1000)
    counting = Countdown(
        phase=COUNTING,
        expires_at_ms=expires_at,
        remaining_ms=expires_at - now_ms,
        generation=state.generation + 1,
    )
    return _expire_if_due(counting)


def tick(state, now_ms, generation):
    if state.phase != COUNTING or generation != state.generation:
        return state
    return _expire_if_due(replace(state, remaining_ms=state.expires_at_ms - now_ms))


def cancel(state):
    """Stop counting (navigation away). Outstanding ticks become stale."""
    if state.phase != COUNTING:
        return state
    return replace(state, phase=CANCELLED, generation=state.generation + 1)


def _expire_if_due(state):
    if state.remaining_ms <= 0:
        return replace(state, phase=EXPIRED, remaining_ms=0)
    return state


def display(state):
    """MM:SS of the remaining time; frozen at 00:00 once expired."""
    remaining = max(0, state.remaining_ms) if state.phase == COUNTING else 0
    minutes, rest = divmod(remaining, 60 * 1000)
    return f"{minutes:02d}:{rest // 1000:02d}"


def is_urgent(state):
    """Under a minute left (or expired): the view switches the timer to its warning colour."""
    return state.phase == EXPIRED or (state.phase == COUNTING and state.remaining_ms < URGENT_MS)


def expire_now(state):
    """Server reported the code unusable (expired or locked): stop counting and allow resend."""
    if state.phase == EXPIRED:
        return state
    return Countdown(phase=EXPIRED, expires_at_ms=state.expires_at_ms, remaining_ms=0,
                     generation=state.generation + 1)
