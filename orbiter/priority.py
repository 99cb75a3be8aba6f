"""
Priority conventions for controller types.

Lower numbers win arbitration inside the simultaneity window. The hardware
control surface ranks highest, on-screen widgets next, then sensors, and
background automation last. Anything unknown falls back to
FALLBACK_PRIORITY.
"""

PRIORITY_MAP = {
    "midi": 1,
    "webaudio-knob": 2,
    "webaudio-slider": 3,
    "webaudio-switch": 4,
    "webaudio-numeric-keyboard": 5,
    "webaudio-param": 6,
    "webaudio-keyboard": 7,
    "sensor-x": 8,
    "sensor-y": 9,
    "sensor-z": 10,
    "sensor-distance": 11,
    "lfo-A": 12,
    "lfo-B": 13,
    "lfo-C": 14,
}

FALLBACK_PRIORITY = 100


def get_priority(controller_type: str) -> int:
    """Priority for a controller type, FALLBACK_PRIORITY if unknown.

    Examples:
        >>> get_priority("midi")
        1
        >>> get_priority("joystick")
        100
    """
    return PRIORITY_MAP.get(controller_type, FALLBACK_PRIORITY)
