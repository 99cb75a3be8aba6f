"""
Orbiter - Parameter synchronization engine for the interactive player.

Modules:
    parameters: Parameter registry and subscription fanout
    arbitration: Priority/time-window decision for contended writes
    transforms: Forward/inverse transform pairs for parameter curves
    priority: Priority conventions per controller type
    settings: YAML parameter table (orbiter/config/parameters.yaml)
    osc: Shared OSC infrastructure (servers, validation, constants)
    bridge: Remote UI widget surface over OSC
    midi: MIDI CC controller with MIDI learn and feedback
    sensors: Motion sensor controller
    lfo: LFO automation source
    app: Application assembly (python -m orbiter)
"""

__version__ = "0.1.0"

# Note: Modules are imported on-demand so that python -m orbiter.cli
# does not pull in mido or numpy.
# Use: from orbiter import parameters, transforms, etc.
