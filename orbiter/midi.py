#!/usr/bin/env python3
"""
Orbiter MIDI Controller - MIDI control surface ↔ parameter registry.

Incoming Control Change messages drive mapped parameters; value changes
made elsewhere (widgets, sensors, LFOs) are sent back as CC so motorized
faders and LED rings follow along.

Architecture:
    MIDI Input (CC) → mapping (channel, cc) → set_normalized_value(param, value/127)
    Registry change → on_parameter_changed → normalize(output value) → CC out

MIDI learn:
    start_learn("x") arms learning; the next CC received (any channel)
    becomes the mapping for "x" and learning ends.

Ignored input:
    - anything that is not control_change (notes, clock, sysex)
    - channel mode messages (CC 120-127)

Feedback is only sent for parameters the controller subscribed to via
subscribe_feedback(), which requires the parameter to be bidirectional.
"""

import threading
import time
from typing import Dict, Optional, Tuple

import mido

from orbiter.log import get_logger
from orbiter.parameters import Controller, ParameterRegistry, normalize
from orbiter.priority import get_priority

logger = get_logger("midi")


# ============================================================================
# CONSTANTS
# ============================================================================

CC_MAX = 127
CHANNEL_MAX = 15

# CC numbers at or above this are channel mode messages (all notes off, etc.)
CHANNEL_MODE_CC_START = 120

# Input polling interval (seconds)
POLL_INTERVAL = 0.005


def cc_to_normalized(value: int) -> float:
    """Map a 0-127 CC value onto [0, 1]."""
    return value / CC_MAX


def normalized_to_cc(normalized: float) -> int:
    """Map [0, 1] onto 0-127, clamping out-of-range input.

    Examples:
        >>> normalized_to_cc(0.5)
        64
        >>> normalized_to_cc(1.7)
        127
    """
    clamped = min(1.0, max(0.0, normalized))
    return int(round(clamped * CC_MAX))


def validate_mapping(channel: int, cc: int) -> None:
    """Validate a (channel, cc) pair.

    Raises:
        ValueError: If channel is outside 0-15 or cc outside 0-127
    """
    if not 0 <= channel <= CHANNEL_MAX:
        raise ValueError(f"MIDI channel must be in range 0-{CHANNEL_MAX}, got {channel}")
    if not 0 <= cc <= CC_MAX:
        raise ValueError(f"MIDI CC must be in range 0-{CC_MAX}, got {cc}")


# ============================================================================
# MIDI CONTROLLER
# ============================================================================

class MidiController(Controller):
    """MIDI CC control surface bound to the parameter registry.

    State:
        mappings: dict[str, (channel, cc)] - parameter → CC assignment
        learning: parameter name awaiting a CC, or None
        last_sent: dict[(channel, cc), value] - dedup for CC feedback

    Args:
        registry: Shared parameter registry
        midi_input: Mido input port (None for output-only or tests)
        midi_output: Mido output port (None disables feedback)
        mappings: Initial parameter → (channel, cc) mappings
        controller_type: Key into PRIORITY_MAP
    """

    def __init__(self, registry: ParameterRegistry,
                 midi_input: Optional[mido.ports.BaseInput] = None,
                 midi_output: Optional[mido.ports.BaseOutput] = None,
                 mappings: Optional[Dict[str, Tuple[int, int]]] = None,
                 controller_type: str = "midi"):
        self.registry = registry
        self.midi_input = midi_input
        self.midi_output = midi_output
        self.priority = get_priority(controller_type)

        self.mappings: Dict[str, Tuple[int, int]] = {}
        for param, (channel, cc) in (mappings or {}).items():
            self.set_mapping(param, channel, cc)

        self.learning: Optional[str] = None
        self.last_sent: Dict[Tuple[int, int], int] = {}

        self.input_thread: Optional[threading.Thread] = None
        self.running = False

    # ------------------------------------------------------------------
    # Mappings and MIDI learn
    # ------------------------------------------------------------------

    def set_mapping(self, param: str, channel: int, cc: int) -> None:
        """Map a parameter to a (channel, cc) pair, replacing any previous one."""
        if not param:
            raise ValueError("Parameter name is required for mapping")
        validate_mapping(channel, cc)
        self.mappings[param] = (channel, cc)
        logger.info(f"Mapped '{param}' to MIDI channel {channel + 1}, CC {cc}")

    def clear_mapping(self, param: str) -> bool:
        """Remove a parameter's mapping. Returns False if it had none."""
        if self.mappings.pop(param, None) is None:
            logger.warning(f"No MIDI mapping found for parameter '{param}'")
            return False
        logger.info(f"Cleared MIDI mapping for parameter '{param}'")
        return True

    def start_learn(self, param: str) -> None:
        """Arm MIDI learn: the next CC received is mapped to `param`."""
        if not self.registry.has_parameter(param):
            logger.warning(f"MIDI learn: parameter '{param}' does not exist")
            return
        self.learning = param
        logger.info(f"MIDI learn armed for '{param}', move a control...")

    def cancel_learn(self) -> None:
        if self.learning is not None:
            logger.info(f"MIDI learn cancelled for '{self.learning}'")
        self.learning = None

    def params_for(self, channel: int, cc: int):
        """Parameters mapped to a (channel, cc) pair, in mapping order."""
        return [param for param, mapping in self.mappings.items() if mapping == (channel, cc)]

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def handle_message(self, msg: mido.Message) -> None:
        """Route one incoming MIDI message."""
        if msg.type != 'control_change':
            return
        if msg.control >= CHANNEL_MODE_CC_START:
            return

        if self.learning is not None:
            param = self.learning
            self.learning = None
            self.set_mapping(param, msg.channel, msg.control)
            return

        targets = self.params_for(msg.channel, msg.control)
        if not targets:
            return

        # The device is already at this value; don't send it back
        self.last_sent[(msg.channel, msg.control)] = msg.value

        normalized = cc_to_normalized(msg.value)
        for param in targets:
            logger.debug(f"CC {msg.control} ch{msg.channel + 1} → '{param}' = {normalized:.3f}")
            self.registry.set_normalized_value(param, normalized, self, self.priority)

    def _midi_input_loop(self):
        """MIDI input processing loop (runs in separate thread)."""
        logger.info("MIDI input thread started")

        while self.running:
            for msg in self.midi_input.iter_pending():
                if not self.running:
                    break
                self.handle_message(msg)

            time.sleep(POLL_INTERVAL)

        logger.info("MIDI input thread exiting")

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def subscribe_feedback(self, param: str) -> bool:
        """Follow a bidirectional parameter and mirror it as CC output."""
        snapshot = self.registry.get_parameter(param)
        if snapshot is None:
            logger.warning(f"Parameter '{param}' does not exist")
            return False
        if not snapshot.is_bidirectional:
            logger.warning(f"Parameter '{param}' is not bidirectional")
            return False
        return self.registry.subscribe(self, param, self.priority)

    def on_parameter_changed(self, name: str, value: float) -> None:
        mapping = self.mappings.get(name)
        if mapping is None or self.midi_output is None:
            return

        param_range = self.registry.get_range(name)
        if param_range is None:
            return

        # value is the output transform of raw, which undoes the input transform
        # applied to incoming CCs, so feedback lands where the fader was left
        cc_value = normalized_to_cc(normalize(value, *param_range))
        if self.last_sent.get(mapping) == cc_value:
            return

        channel, cc = mapping
        self.midi_output.send(mido.Message('control_change', channel=channel, control=cc, value=cc_value))
        self.last_sent[mapping] = cc_value

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe feedback for mapped parameters and start reading input."""
        for param in list(self.mappings):
            if self.registry.has_parameter(param):
                snapshot = self.registry.get_parameter(param)
                if snapshot.is_bidirectional:
                    self.subscribe_feedback(param)

        if self.midi_input is not None:
            self.running = True
            self.input_thread = threading.Thread(target=self._midi_input_loop, daemon=True)
            self.input_thread.start()

    def shutdown(self) -> None:
        """Stop the input thread and close ports."""
        logger.info("Shutting down MIDI controller...")
        self.running = False
        if self.input_thread is not None:
            self.input_thread.join(timeout=1.0)
            self.input_thread = None
        if self.midi_input is not None:
            self.midi_input.close()
        if self.midi_output is not None:
            self.midi_output.close()


def find_midi_ports(pattern: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
    """Find MIDI input/output port names.

    Args:
        pattern: Substring of the port name, None for the first available

    Returns:
        Tuple of (input_port_name, output_port_name), None where not found
    """
    input_port = None
    output_port = None

    for port in mido.get_input_names():
        if pattern is None or pattern in port:
            input_port = port
            break
    for port in mido.get_output_names():
        if pattern is None or pattern in port:
            output_port = port
            break

    return input_port, output_port
