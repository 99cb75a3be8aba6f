#!/usr/bin/env python3
"""
Orbiter LFO - low-frequency automation source.

Each LFO writes one target parameter at UPDATE_RATE_HZ through the
normal contended path, at the lowest conventional priority, so any
hand on a knob or fader takes over within the simultaneity window.

Waveforms (value in [-1, 1] for phase in radians):
    sine      sin(phase)
    triangle  -1 → 1 over the first half cycle, back down over the second
    square    +1 / -1
    sawup     -1 → 1 over a cycle
    sawdown   1 → -1 over a cycle
    random    sample-and-hold, new value once per cycle

Output written to the target: clamp((value * amplitude + offset + 1) / 2, 0, 1).

The frequency can follow a registry parameter (rate_parameter); the LFO
subscribes to it and takes its output value as Hz.
"""

import math
import random
import threading
import time
from typing import Optional

from orbiter.log import get_logger
from orbiter.parameters import Controller, ParameterRegistry
from orbiter.priority import get_priority

logger = get_logger("lfo")


WAVEFORMS = ("sine", "triangle", "square", "sawup", "sawdown", "random")

UPDATE_RATE_HZ = 60
TWO_PI = 2.0 * math.pi


class LFO(Controller):
    """Low-frequency oscillator bound to one target parameter.

    Args:
        registry: Shared parameter registry
        lfo_id: Identifier ("A", "B", ...), used for the priority lookup
        target: Parameter to modulate
        waveform: One of WAVEFORMS
        frequency: Hz, until a rate parameter says otherwise
        amplitude: Scale of the [-1, 1] waveform
        offset: Added after scaling
        rate_parameter: Optional parameter supplying the frequency
        seed: Seed for the random waveform
    """

    def __init__(self, registry: ParameterRegistry, lfo_id: str, target: str,
                 waveform: str = "sine", frequency: float = 0.1,
                 amplitude: float = 1.0, offset: float = 0.0,
                 rate_parameter: Optional[str] = None, seed: int = 0):
        self.registry = registry
        self.lfo_id = lfo_id
        self.target = target
        self.waveform = "sine"
        self.set_waveform(waveform)
        self.frequency = frequency
        self.amplitude = amplitude
        self.offset = offset
        self.rate_parameter = rate_parameter
        self.priority = get_priority(f"lfo-{lfo_id}")

        self.phase = 0.0
        self._rng = random.Random(seed)
        self._held = self._rng.uniform(-1.0, 1.0)

        self._stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

        if rate_parameter is not None:
            self.registry.subscribe(self, rate_parameter, self.priority)

    @property
    def is_active(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def set_waveform(self, waveform: str) -> None:
        if waveform not in WAVEFORMS:
            logger.warning(f"LFO {self.lfo_id}: unknown waveform '{waveform}', using sine")
            waveform = "sine"
        self.waveform = waveform

    def on_parameter_changed(self, name: str, value: float) -> None:
        if name == self.rate_parameter:
            self.frequency = max(0.0, float(value))
            logger.debug(f"LFO {self.lfo_id}: frequency {self.frequency:.3f} Hz")

    def value_at(self, phase: float) -> float:
        """Waveform value in [-1, 1] at `phase` radians."""
        wrapped = phase % TWO_PI
        if self.waveform == "sine":
            return math.sin(wrapped)
        if self.waveform == "triangle":
            if wrapped < math.pi:
                return (wrapped / math.pi) * 2.0 - 1.0
            return 1.0 - ((wrapped - math.pi) / math.pi) * 2.0
        if self.waveform == "square":
            return 1.0 if wrapped < math.pi else -1.0
        if self.waveform == "sawup":
            return (wrapped / TWO_PI) * 2.0 - 1.0
        if self.waveform == "sawdown":
            return 1.0 - (wrapped / TWO_PI) * 2.0
        return self._held

    def output(self) -> float:
        """Current output mapped to [0, 1]."""
        value = self.value_at(self.phase) * self.amplitude + self.offset
        return min(1.0, max(0.0, (value + 1.0) / 2.0))

    def tick(self, dt: float) -> float:
        """Advance by dt seconds and write the target.

        Returns:
            The normalized value written
        """
        self.phase += TWO_PI * self.frequency * dt
        if self.phase >= TWO_PI:
            self.phase %= TWO_PI
            self._held = self._rng.uniform(-1.0, 1.0)

        normalized = self.output()
        self.registry.set_normalized_value(self.target, normalized, self, self.priority)
        return normalized

    def _run(self) -> None:
        interval = 1.0 / UPDATE_RATE_HZ
        last = time.monotonic()
        while not self._stop_event.wait(interval):
            now = time.monotonic()
            self.tick(now - last)
            last = now

    def start(self) -> None:
        if self.is_active:
            logger.warning(f"LFO {self.lfo_id}: already active")
            return
        self.phase = 0.0
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()
        logger.info(f"LFO {self.lfo_id}: {self.waveform} → '{self.target}' at {self.frequency:.3f} Hz")

    def stop(self) -> None:
        if not self.is_active:
            logger.warning(f"LFO {self.lfo_id}: not active, cannot stop")
            return
        self._stop_event.set()
        self.thread.join(timeout=1.0)
        self.thread = None
        logger.info(f"LFO {self.lfo_id}: stopped")
