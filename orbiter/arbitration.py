"""
Arbitration policy for contended parameter writes.

Every write that reaches an existing parameter through the contended
path (set_raw_value, set_normalized_value, set_controller_value) is
checked against the incumbent: the controller and priority of the last
accepted write, and when it happened.

Rule:
    accept iff (NOT simultaneous)
            OR (priority < last_priority)
            OR (simultaneous AND same controller)

    simultaneous = now - last_update_timestamp < SIMULTANEOUS_WINDOW

Lower numbers win. Outside the window the latest write always wins.
Inside the window a strictly higher-priority source can take over, and
the incumbent may keep moving its own value (continuous drags, fader
sweeps). Everyone else is dropped.

Only the single incumbent is compared against each arrival. Three
near-simultaneous writers can therefore end on a different value
depending on arrival order.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


# Writes closer together than this (seconds) are considered simultaneous
SIMULTANEOUS_WINDOW = 0.050

# Priority used when a caller omits one: loses every contention
DEFAULT_PRIORITY = math.inf


class Decision(Enum):
    """Outcome of an arbitration check."""
    ACCEPT = "accept"
    REJECT = "reject"


@dataclass(frozen=True)
class WriteAttempt:
    """The contender: who is writing and at which priority."""
    controller: Any
    priority: float = DEFAULT_PRIORITY


@dataclass(frozen=True)
class IncumbentState:
    """Bookkeeping of the last accepted write on a parameter.

    last_update_timestamp is None until the first accepted contended
    write, which makes that first write never simultaneous.
    """
    last_priority: float = DEFAULT_PRIORITY
    last_update_timestamp: Optional[float] = None
    last_controller: Any = None


def is_simultaneous(now: float, last_update_timestamp: Optional[float],
                    window: float = SIMULTANEOUS_WINDOW) -> bool:
    """Check whether `now` falls inside the window of the last write."""
    if last_update_timestamp is None:
        return False
    return (now - last_update_timestamp) < window


def decide(now: float, candidate: WriteAttempt, incumbent: IncumbentState,
           window: float = SIMULTANEOUS_WINDOW) -> Decision:
    """Decide whether a write attempt is accepted.

    Pure function: no side effects, no clock access.

    Args:
        now: Current clock reading (seconds, same clock as the timestamps)
        candidate: The incoming write
        incumbent: State left by the last accepted write
        window: Simultaneity window in seconds

    Returns:
        Decision.ACCEPT or Decision.REJECT

    Examples:
        >>> decide(1.0, WriteAttempt("x", 5), IncumbentState())
        <Decision.ACCEPT: 'accept'>
        >>> decide(1.02, WriteAttempt("x", 5), IncumbentState(1, 1.01, "y"))
        <Decision.REJECT: 'reject'>
    """
    simultaneous = is_simultaneous(now, incumbent.last_update_timestamp, window)
    same_controller = candidate.controller is incumbent.last_controller

    if (not simultaneous
            or candidate.priority < incumbent.last_priority
            or (simultaneous and same_controller)):
        return Decision.ACCEPT
    return Decision.REJECT
