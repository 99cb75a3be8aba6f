#!/usr/bin/env python3
"""
Orbiter application assembly.

Builds one ParameterRegistry, seeds it from the YAML parameter table and
wires every controller to it:

    OscBridge         remote widget surface      (PORT_PARAMS / PORT_FEEDBACK)
    SensorController  phone / IMU orientation    (PORT_SENSORS)
    MidiController    MIDI control surface       (optional, mido)
    LFO A/B/C         automation                 (optional, --lfo)

The assembly owns the lifecycle: start() brings controllers up,
shutdown() tears them down in reverse order.

Usage:
    python -m orbiter
    python -m orbiter --config my_params.yaml --midi-port "Launch Control"
    python -m orbiter --no-midi --lfo --log-level DEBUG
"""

import argparse
import os
import signal
import sys
import time
from typing import Dict, List, Optional

import mido

from orbiter import osc
from orbiter.bridge import OscBridge
from orbiter.settings import DEFAULT_PARAMETER_CONFIG, apply_parameter_config, load_parameter_config
from orbiter.lfo import LFO
from orbiter.log import get_logger, set_level
from orbiter.midi import MidiController, find_midi_ports
from orbiter.parameters import ParameterRegistry
from orbiter.sensors import SensorController

logger = get_logger("app")


class Orbiter:
    """Top-level assembly of the registry and its controllers.

    Args:
        config: Validated parameter table (see orbiter.settings)
        registry: Registry to populate (default: a new one)
        bridge: Widget bridge (default: built from ports below)
        sensors: Sensor controller (default: built from sensor_port)
        midi: MIDI controller, or None to run without MIDI
        enable_lfos: Build LFOs from the `lfos` config section
    """

    def __init__(self, config: Dict, registry: Optional[ParameterRegistry] = None,
                 bridge: Optional[OscBridge] = None,
                 sensors: Optional[SensorController] = None,
                 midi: Optional[MidiController] = None,
                 enable_lfos: bool = False,
                 params_port: int = osc.PORT_PARAMS,
                 feedback_host: str = "255.255.255.255",
                 feedback_port: int = osc.PORT_FEEDBACK,
                 sensor_port: int = osc.PORT_SENSORS):
        self.config = config
        self.registry = registry or ParameterRegistry()
        self.parameter_names = apply_parameter_config(self.registry, config)

        self.bridge = bridge or OscBridge(
            self.registry,
            listen_port=params_port,
            feedback_host=feedback_host,
            feedback_port=feedback_port,
        )
        self.sensors = sensors or SensorController(self.registry, listen_port=sensor_port)
        self.midi = midi

        self.lfos: List[LFO] = []
        if enable_lfos:
            for lfo_id, lfo_cfg in (config.get("lfos") or {}).items():
                self.lfos.append(LFO(
                    self.registry,
                    str(lfo_id),
                    lfo_cfg["target"],
                    waveform=lfo_cfg.get("waveform", "sine"),
                    frequency=float(lfo_cfg.get("frequency", 0.1)),
                    amplitude=float(lfo_cfg.get("amplitude", 1.0)),
                    offset=float(lfo_cfg.get("offset", 0.0)),
                    rate_parameter=lfo_cfg.get("rate_parameter"),
                ))

    def start(self) -> None:
        logger.info(f"Starting with {len(self.parameter_names)} parameters: {', '.join(self.parameter_names)}")
        self.bridge.attach()
        self.bridge.start()
        self.sensors.start()
        if self.midi is not None:
            self.midi.start()
        for lfo in self.lfos:
            lfo.start()

    def shutdown(self) -> None:
        logger.info("Shutting down...")
        for lfo in self.lfos:
            if lfo.is_active:
                lfo.stop()
        if self.midi is not None:
            self.midi.shutdown()
        self.sensors.shutdown()
        self.bridge.shutdown()


def open_midi_controller(registry: ParameterRegistry, config: Dict,
                         port_pattern: Optional[str] = None) -> Optional[MidiController]:
    """Open MIDI ports and build the controller from the `midi` section.

    Returns:
        MidiController, or None if no MIDI port is available
    """
    midi_cfg = config.get("midi") or {}
    pattern = port_pattern or midi_cfg.get("port")

    input_name, output_name = find_midi_ports(pattern)
    if input_name is None and output_name is None:
        logger.warning("No MIDI ports found, running without MIDI")
        logger.info("Available MIDI input ports:")
        for port in mido.get_input_names():
            logger.info(f"  - {port}")
        return None

    mappings = {
        param: (int(m.get("channel", 0)), int(m["cc"]))
        for param, m in (midi_cfg.get("mappings") or {}).items()
    }

    midi_input = mido.open_input(input_name) if input_name else None
    midi_output = mido.open_output(output_name) if output_name else None
    logger.info(f"MIDI input: {input_name}, output: {output_name}")

    return MidiController(registry, midi_input, midi_output, mappings)


def main():
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="Orbiter - parameter synchronization engine"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_PARAMETER_CONFIG),
        help="Path to parameters.yaml (default: bundled table)",
    )
    parser.add_argument(
        "--params-port",
        type=int,
        default=osc.PORT_PARAMS,
        help=f"Port for widget writes (default: {osc.PORT_PARAMS})",
    )
    parser.add_argument(
        "--feedback-host",
        type=str,
        default="255.255.255.255",
        help="Host for feedback messages (default: broadcast)",
    )
    parser.add_argument(
        "--feedback-port",
        type=int,
        default=osc.PORT_FEEDBACK,
        help=f"Port for feedback messages (default: {osc.PORT_FEEDBACK})",
    )
    parser.add_argument(
        "--sensor-port",
        type=int,
        default=osc.PORT_SENSORS,
        help=f"Port for sensor streams (default: {osc.PORT_SENSORS})",
    )
    parser.add_argument(
        "--midi-port",
        type=str,
        default=None,
        help="Substring of the MIDI port name (default: from config)",
    )
    parser.add_argument(
        "--no-midi",
        action="store_true",
        help="Run without MIDI",
    )
    parser.add_argument(
        "--lfo",
        action="store_true",
        help="Start the LFOs defined in the config",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("ORBITER_LOG_LEVEL", "INFO"),
        help="Logging verbosity (default: INFO)",
    )

    args = parser.parse_args()

    try:
        set_level(args.log_level)

        for port in (args.params_port, args.feedback_port, args.sensor_port):
            osc.validate_port(port)

        config = load_parameter_config(args.config)
        registry = ParameterRegistry()
        midi = None if args.no_midi else open_midi_controller(registry, config, args.midi_port)

        app = Orbiter(
            config,
            registry=registry,
            midi=midi,
            enable_lfos=args.lfo,
            params_port=args.params_port,
            feedback_host=args.feedback_host,
            feedback_port=args.feedback_port,
            sensor_port=args.sensor_port,
        )
        app.start()
    except FileNotFoundError as e:
        logger.error(f"{e}")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"{e}")
        sys.exit(1)
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error("OSC port already in use")
        else:
            logger.error(f"{e}")
        sys.exit(1)

    def signal_handler(sig, frame):
        app.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Orbiter running. Press Ctrl+C to exit.")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        app.shutdown()


if __name__ == "__main__":
    main()
