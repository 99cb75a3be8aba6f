"""
Parameter Registry - shared, range-bound values driven by many controllers.

The registry is the single owner of parameter state. Controllers (UI
widgets, MIDI devices, motion sensors, LFOs) write through it and observe
it through one contract:

    on_parameter_changed(name, value)      required
    on_range_changed(name, min, max)       optional
    on_scale_changed(name, scale)          optional

Two kinds of writes:
    - Authoritative: add_or_update_parameter(), set_to_middle(). Never
      arbitrated, always notify.
    - Contended: set_raw_value(), set_normalized_value(),
      set_controller_value(). Checked by orbiter.arbitration.decide()
      against the last accepted write; notify only when the clamped raw
      value actually changes.

Echo suppression: value notifications skip the controller that made the
write unless the parameter is bidirectional. Range and scale
notifications go to every subscriber.

The registry is constructed by the application assembly and passed to
each controller; there is no module-level instance.
"""

import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from orbiter.arbitration import (
    DEFAULT_PRIORITY,
    Decision,
    IncumbentState,
    WriteAttempt,
    decide,
)
from orbiter.log import get_logger
from orbiter.transforms import identity

logger = get_logger("parameters")


# ============================================================================
# CONTROLLER CONTRACT
# ============================================================================

class Controller:
    """Base class for parameter observers.

    Subclasses must implement on_parameter_changed(). The range and scale
    callbacks default to no-ops. Subclassing is optional: the registry
    accepts any object with a callable on_parameter_changed.
    """

    def on_parameter_changed(self, name: str, value: float) -> None:
        raise NotImplementedError

    def on_range_changed(self, name: str, min_value: float, max_value: float) -> None:
        pass

    def on_scale_changed(self, name: str, scale: str) -> None:
        pass


def is_controller(obj: Any) -> bool:
    """Check that obj can receive value notifications."""
    return callable(getattr(obj, "on_parameter_changed", None))


# ============================================================================
# DATA MODEL
# ============================================================================

def normalize(value: float, min_value: float, max_value: float) -> float:
    """Map a raw value onto [0, 1]. Precondition: min_value != max_value."""
    return (value - min_value) / (max_value - min_value)


def denormalize(normalized: float, min_value: float, max_value: float) -> float:
    """Map a [0, 1] value back onto the raw range."""
    return normalized * (max_value - min_value) + min_value


def clamp(value: float, min_value: float, max_value: float) -> float:
    return min(max_value, max(min_value, value))


@dataclass
class Subscription:
    controller: Any
    priority: float = DEFAULT_PRIORITY


@dataclass
class Parameter:
    """A named value with its range, transforms and arbitration bookkeeping."""
    name: str
    raw_value: float = 0.0
    normalized_value: float = 0.0
    min: float = 0.0
    max: float = 1.0
    scale: str = "linear"
    input_transform: Callable[[float], float] = identity
    output_transform: Callable[[float], float] = identity
    is_bidirectional: bool = False
    subscribers: List[Subscription] = field(default_factory=list)
    last_priority: float = DEFAULT_PRIORITY
    last_update_timestamp: Optional[float] = None
    last_controller: Any = None

    def incumbent(self) -> IncumbentState:
        return IncumbentState(
            last_priority=self.last_priority,
            last_update_timestamp=self.last_update_timestamp,
            last_controller=self.last_controller,
        )

    def output_value(self) -> float:
        return self.output_transform(self.raw_value)

    def find_subscription(self, controller: Any) -> Optional[Subscription]:
        for sub in self.subscribers:
            if sub.controller is controller:
                return sub
        return None


# ============================================================================
# REGISTRY
# ============================================================================

class ParameterRegistry:
    """Single source of truth for all parameters.

    Args:
        clock: Returns the current time in seconds. Defaults to
            time.monotonic; tests inject a fake clock.

    All public operations run under one re-entrant lock so that events
    arriving on OSC, MIDI and timer threads are serialised. Callbacks run
    inside the lock and may write back into the registry.
    """

    normalize = staticmethod(normalize)
    denormalize = staticmethod(denormalize)

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._parameters: Dict[str, Parameter] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Registration (authoritative)
    # ------------------------------------------------------------------

    def add_or_update_parameter(
        self,
        name: str,
        normalized_seed: float = 0.0,
        min_value: float = 0.0,
        max_value: float = 1.0,
        is_bidirectional: bool = False,
        scale: str = "linear",
        input_transform: Callable[[float], float] = identity,
        output_transform: Callable[[float], float] = identity,
    ) -> None:
        """Create a parameter or reset an existing one in place.

        The raw value is clamp(input_transform(normalized_seed), min, max).
        Range and scale notifications fire when those changed; a value
        notification is always sent to every subscriber. Arbitration is
        not consulted.

        Raises:
            ValueError: If min_value == max_value
        """
        if min_value == max_value:
            raise ValueError(f"Parameter '{name}' needs a non-empty range, got [{min_value}, {max_value}]")

        with self._lock:
            raw = clamp(input_transform(normalized_seed), min_value, max_value)
            param = self._parameters.get(name)

            if param is None:
                param = Parameter(
                    name=name,
                    raw_value=raw,
                    normalized_value=normalize(raw, min_value, max_value),
                    min=min_value,
                    max=max_value,
                    scale=scale,
                    input_transform=input_transform,
                    output_transform=output_transform,
                    is_bidirectional=is_bidirectional,
                )
                self._parameters[name] = param
                logger.debug(f"Added parameter '{name}' raw={raw} range=[{min_value}, {max_value}] scale={scale}")

                self._notify_range(param)
                self._notify_value(param, source=None, force_all=True)
                self._notify_scale(param)
                return

            logger.debug(f"Updating existing parameter '{name}'")
            range_changed = param.min != min_value or param.max != max_value
            scale_changed = param.scale != scale

            param.min = min_value
            param.max = max_value
            param.scale = scale
            param.is_bidirectional = is_bidirectional
            param.input_transform = input_transform
            param.output_transform = output_transform
            param.raw_value = raw
            param.normalized_value = normalize(raw, min_value, max_value)

            if range_changed:
                self._notify_range(param)
            if scale_changed:
                self._notify_scale(param)
            self._notify_value(param, source=None, force_all=True)

    def set_range(self, name: str, min_value: float, max_value: float) -> None:
        """Change a parameter's bounds.

        The normalized value is recomputed against the new range; the raw
        value is re-clamped only by the next write.
        """
        if min_value == max_value:
            raise ValueError(f"Parameter '{name}' needs a non-empty range, got [{min_value}, {max_value}]")

        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"set_range: parameter '{name}' not found")
                return
            if param.min == min_value and param.max == max_value:
                return

            param.min = min_value
            param.max = max_value
            param.normalized_value = normalize(param.raw_value, min_value, max_value)
            self._notify_range(param)

    def set_scale(self, name: str, scale: str) -> None:
        """Change a parameter's descriptive scale tag."""
        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"set_scale: parameter '{name}' not found")
                return
            if param.scale == scale:
                return

            param.scale = scale
            self._notify_scale(param)

    def set_to_middle(self, name: str) -> None:
        """Force a parameter to the centre of its range and tell everyone.

        Bypasses arbitration and echo suppression.
        """
        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"set_to_middle: parameter '{name}' not found")
                return

            param.raw_value = (param.min + param.max) / 2
            param.normalized_value = 0.5
            self._notify_value(param, source=None, force_all=True)

    # ------------------------------------------------------------------
    # Contended writes
    # ------------------------------------------------------------------

    def set_raw_value(self, name: str, raw: float, source: Any = None,
                      priority: float = DEFAULT_PRIORITY) -> bool:
        """Write a raw value on behalf of `source`.

        The input transform is applied to `raw`, the result clamped to the
        range. Returns True if the write won arbitration.
        """
        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"set_raw_value: parameter '{name}' not found")
                return False
            return self._contended_write(param, param.input_transform(raw), source, priority)

    def set_normalized_value(self, name: str, normalized: float, source: Any = None,
                             priority: float = DEFAULT_PRIORITY) -> bool:
        """Write a canonical [0, 1] value on behalf of `source`.

        The value is denormalized onto the range first, then passed through
        the input transform and clamped.
        """
        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"set_normalized_value: parameter '{name}' not found")
                return False
            candidate = param.input_transform(denormalize(normalized, param.min, param.max))
            return self._contended_write(param, candidate, source, priority)

    def set_controller_value(self, name: str, controller_value: float, source: Any = None,
                             priority: float = DEFAULT_PRIORITY) -> bool:
        """Write a value expressed in the controller's own domain.

        The input transform maps it to a raw candidate, which then follows
        the raw write path. Unlike set_normalized_value() nothing is
        denormalized first.
        """
        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"set_controller_value: parameter '{name}' not found")
                return False
            return self._contended_write(param, param.input_transform(controller_value), source, priority)

    def _contended_write(self, param: Parameter, candidate: float, source: Any,
                         priority: float) -> bool:
        now = self.clock()
        decision = decide(now, WriteAttempt(source, priority), param.incumbent())
        if decision is Decision.REJECT:
            logger.debug(
                f"Write to '{param.name}' rejected (priority {priority} vs {param.last_priority})"
            )
            return False

        clamped = clamp(candidate, param.min, param.max)
        param.last_priority = priority
        param.last_update_timestamp = now
        param.last_controller = source

        if clamped == param.raw_value:
            return True

        param.raw_value = clamped
        param.normalized_value = normalize(clamped, param.min, param.max)
        self._notify_value(param, source=source)
        return True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, controller: Any, name: str,
                  priority: float = DEFAULT_PRIORITY) -> bool:
        """Subscribe a controller to a parameter.

        Unknown parameters are created with defaults. Re-subscribing
        updates the priority and keeps its delivery position.
        The controller receives the current value before this returns.

        Returns:
            False if the controller lacks on_parameter_changed
        """
        if not is_controller(controller):
            logger.error(f"Controller {controller!r} must implement 'on_parameter_changed'")
            return False

        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"Parameter '{name}' does not exist, adding with default values")
                self.add_or_update_parameter(name)
                param = self._parameters[name]

            existing = param.find_subscription(controller)
            if existing is not None:
                existing.priority = priority
            else:
                param.subscribers.append(Subscription(controller, priority))

            controller.on_parameter_changed(name, param.output_value())
            return True

    def unsubscribe(self, controller: Any, name: str) -> bool:
        """Remove a controller from a parameter's subscribers."""
        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                logger.warning(f"unsubscribe: parameter '{name}' does not exist")
                return False

            existing = param.find_subscription(controller)
            if existing is None:
                logger.warning(f"unsubscribe: controller was not subscribed to '{name}'")
                return False

            param.subscribers = [sub for sub in param.subscribers if sub is not existing]
            return True

    # ------------------------------------------------------------------
    # Fanout
    # ------------------------------------------------------------------

    def _notify_value(self, param: Parameter, source: Any, force_all: bool = False) -> None:
        for sub in list(param.subscribers):
            if not force_all and sub.controller is source and not param.is_bidirectional:
                continue
            # Read per subscriber: an earlier callback may have written this parameter
            sub.controller.on_parameter_changed(param.name, param.output_value())

    def _notify_range(self, param: Parameter) -> None:
        for sub in list(param.subscribers):
            callback = getattr(sub.controller, "on_range_changed", None)
            if callable(callback):
                callback(param.name, param.min, param.max)

    def _notify_scale(self, param: Parameter) -> None:
        for sub in list(param.subscribers):
            callback = getattr(sub.controller, "on_scale_changed", None)
            if callable(callback):
                callback(param.name, param.scale)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def has_parameter(self, name: str) -> bool:
        return name in self._parameters

    def get_raw_value(self, name: str) -> Optional[float]:
        param = self._parameters.get(name)
        return None if param is None else param.raw_value

    def get_normalized_value(self, name: str) -> Optional[float]:
        param = self._parameters.get(name)
        return None if param is None else param.normalized_value

    def get_range(self, name: str) -> Optional[Tuple[float, float]]:
        param = self._parameters.get(name)
        return None if param is None else (param.min, param.max)

    def get_scale(self, name: str) -> Optional[str]:
        param = self._parameters.get(name)
        return None if param is None else param.scale

    def get_parameter(self, name: str) -> Optional[Parameter]:
        """Snapshot of one parameter; mutating it does not touch the registry."""
        with self._lock:
            param = self._parameters.get(name)
            if param is None:
                return None
            return _snapshot(param)

    def list_parameters(self) -> List[Parameter]:
        """Snapshots of all parameters in registration order."""
        with self._lock:
            return [_snapshot(param) for param in self._parameters.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._parameters

    def __len__(self) -> int:
        return len(self._parameters)


def _snapshot(param: Parameter) -> Parameter:
    return replace(
        param,
        subscribers=[Subscription(sub.controller, sub.priority) for sub in param.subscribers],
    )
