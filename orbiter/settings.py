"""
Parameter table loading.

The table is a YAML file with a required `parameters` section and
optional `midi` and `lfos` sections:

    parameters:
      x:
        init: 0.0
        min: -100
        max: 100
        bidirectional: true
      body-level:
        init: 0.8
        min: 0
        max: 1
        bidirectional: true
        scale: logarithmic
        transform: logarithmic          # input = inverse, output = forward
      brightness:
        min: 0
        max: 1
        transform:
          piecewise: [[0, 0], [0.5, 0.2], [1, 1]]

    midi:
      port: Launch Control
      mappings:
        body-level: {channel: 0, cc: 7}

    lfos:
      A:
        target: z
        waveform: sine
        frequency: 0.1
        rate_parameter: lfo-A-rate

Usage:
    config = load_parameter_config("orbiter/config/parameters.yaml")
    names = apply_parameter_config(registry, config)
"""

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from orbiter.log import get_logger
from orbiter.transforms import (
    TransformPair,
    get_transform,
    linear,
    logarithmic_custom,
    piecewise_linear,
)

logger = get_logger("settings")

DEFAULT_PARAMETER_CONFIG = Path(__file__).parent / "config" / "parameters.yaml"

MIDI_CHANNEL_MAX = 15
MIDI_CC_MAX = 127


def resolve_transform(entry: Union[None, str, Dict[str, Any]]) -> TransformPair:
    """Turn a `transform` entry into a TransformPair.

    Raises:
        ValueError: If the entry is malformed or names an unknown transform
    """
    if entry is None:
        return linear

    if isinstance(entry, str):
        try:
            return get_transform(entry)
        except KeyError as e:
            raise ValueError(str(e.args[0]))

    if isinstance(entry, dict) and len(entry) == 1:
        kind, args = next(iter(entry.items()))
        if kind == "piecewise":
            if not isinstance(args, list):
                raise ValueError("'piecewise' transform needs a list of points")
            try:
                return piecewise_linear(args)
            except (TypeError, KeyError) as e:
                raise ValueError(f"Invalid piecewise points {args!r}: {e}")
        if kind == "logarithmic_custom":
            args = args or {}
            return logarithmic_custom(
                float(args.get("min_db", -60)),
                float(args.get("max_db", 6)),
            )
        raise ValueError(f"Unknown transform factory '{kind}'")

    raise ValueError(f"Invalid transform entry: {entry!r}")


def _validate_parameter(name: str, entry: Any) -> None:
    if not isinstance(entry, dict):
        raise ValueError(f"Parameter '{name}' must be a mapping, got {type(entry).__name__}")

    for key in ("min", "max"):
        if key not in entry:
            raise ValueError(f"Parameter '{name}' missing '{key}'")
        if not isinstance(entry[key], (int, float)) or isinstance(entry[key], bool):
            raise ValueError(f"Parameter '{name}' '{key}' must be a number, got {entry[key]!r}")

    if entry["min"] == entry["max"]:
        raise ValueError(f"Parameter '{name}' has an empty range [{entry['min']}, {entry['max']}]")

    init = entry.get("init", 0.0)
    if not isinstance(init, (int, float)) or isinstance(init, bool):
        raise ValueError(f"Parameter '{name}' 'init' must be a number, got {init!r}")

    if not isinstance(entry.get("bidirectional", False), bool):
        raise ValueError(f"Parameter '{name}' 'bidirectional' must be true/false")

    resolve_transform(entry.get("transform"))


def _validate_midi(midi: Any, parameters: Dict[str, Any]) -> None:
    if not isinstance(midi, dict):
        raise ValueError("'midi' section must be a mapping")

    mappings = midi.get("mappings", {}) or {}
    if not isinstance(mappings, dict):
        raise ValueError("'midi.mappings' must be a mapping of parameter -> {channel, cc}")

    for param, mapping in mappings.items():
        if param not in parameters:
            raise ValueError(f"MIDI mapping for unknown parameter '{param}'")
        if not isinstance(mapping, dict) or "cc" not in mapping:
            raise ValueError(f"MIDI mapping for '{param}' needs at least 'cc'")
        channel = mapping.get("channel", 0)
        cc = mapping["cc"]
        if not (0 <= channel <= MIDI_CHANNEL_MAX):
            raise ValueError(f"MIDI mapping for '{param}': channel must be 0-{MIDI_CHANNEL_MAX}, got {channel}")
        if not (0 <= cc <= MIDI_CC_MAX):
            raise ValueError(f"MIDI mapping for '{param}': cc must be 0-{MIDI_CC_MAX}, got {cc}")


def _validate_lfos(lfos: Any, parameters: Dict[str, Any]) -> None:
    if not isinstance(lfos, dict):
        raise ValueError("'lfos' section must be a mapping")

    for lfo_id, lfo in lfos.items():
        if not isinstance(lfo, dict) or "target" not in lfo:
            raise ValueError(f"LFO '{lfo_id}' needs a 'target' parameter")
        if lfo["target"] not in parameters:
            raise ValueError(f"LFO '{lfo_id}' targets unknown parameter '{lfo['target']}'")
        rate_param = lfo.get("rate_parameter")
        if rate_param is not None and rate_param not in parameters:
            raise ValueError(f"LFO '{lfo_id}' rate_parameter '{rate_param}' is not defined")


def validate_parameter_config(config: Any) -> Dict[str, Any]:
    """Validate an already parsed parameter table.

    Raises:
        ValueError: If validation fails
    """
    if not isinstance(config, dict):
        raise ValueError("Config must be a mapping with a 'parameters' section")
    if "parameters" not in config:
        raise ValueError("Config missing 'parameters' section")

    parameters = config["parameters"]
    if not isinstance(parameters, dict) or not parameters:
        raise ValueError("'parameters' section must be a non-empty mapping")

    for name, entry in parameters.items():
        _validate_parameter(str(name), entry)

    if config.get("midi") is not None:
        _validate_midi(config["midi"], parameters)
    if config.get("lfos") is not None:
        _validate_lfos(config["lfos"], parameters)

    return config


def load_parameter_config(config_path: Union[str, Path] = DEFAULT_PARAMETER_CONFIG) -> Dict[str, Any]:
    """Load and validate a YAML parameter table.

    Args:
        config_path: Path to parameters.yaml

    Returns:
        Parsed configuration dict

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config validation fails
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, 'r') as f:
        config = yaml.safe_load(f)

    validate_parameter_config(config)
    logger.info(f"Loaded {len(config['parameters'])} parameters from {path}")
    return config


def apply_parameter_config(registry, config: Dict[str, Any]) -> List[str]:
    """Register every parameter of a validated table.

    Returns:
        Parameter names in table order
    """
    names = []
    for name, entry in config["parameters"].items():
        pair = resolve_transform(entry.get("transform"))
        registry.add_or_update_parameter(
            str(name),
            float(entry.get("init", 0.0)),
            float(entry["min"]),
            float(entry["max"]),
            bool(entry.get("bidirectional", False)),
            str(entry.get("scale", "linear")),
            input_transform=pair.inverse,
            output_transform=pair.forward,
        )
        names.append(str(name))
    return names
