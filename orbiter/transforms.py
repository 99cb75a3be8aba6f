"""
Transform pairs for non-linear parameter mappings.

Each pair holds a forward and an inverse function. A parameter stores one
as its input transform (controller value -> raw) and one as its output
transform (raw -> value delivered to observers).

Example:
    >>> from orbiter.transforms import logarithmic
    >>> registry.add_or_update_parameter(
    ...     "body-level", 0.0, -60, 6, True, "logarithmic",
    ...     input_transform=logarithmic.inverse,
    ...     output_transform=logarithmic.forward)
"""

import math
from typing import Callable, Dict, Iterable, List, NamedTuple, Tuple, Union


# Fixed dB range of the `logarithmic` pair
LOG_MIN_DB = -60.0
LOG_MAX_DB = 6.0

# Floor for the inverse so log10 never sees zero or negatives
LOG_INVERSE_FLOOR = 0.0001


class TransformPair(NamedTuple):
    """Forward/inverse function pair."""
    forward: Callable[[float], float]
    inverse: Callable[[float], float]


def identity(x: float) -> float:
    return x


def _db_forward(x: float, min_db: float, max_db: float) -> float:
    clamped = max(0.0, x)
    db = min_db + (max_db - min_db) * clamped
    return 10.0 ** (db / 20.0)


def _db_inverse(y: float, min_db: float, max_db: float) -> float:
    clamped = max(LOG_INVERSE_FLOOR, y)
    db = 20.0 * math.log10(clamped)
    return (db - min_db) / (max_db - min_db)


def _cbrt(y: float) -> float:
    return math.copysign(abs(y) ** (1.0 / 3.0), y)


linear = TransformPair(identity, identity)

# Linear [0,1] to gain on a -60..+6 dB curve (audio volume)
logarithmic = TransformPair(
    lambda x: _db_forward(x, LOG_MIN_DB, LOG_MAX_DB),
    lambda y: _db_inverse(y, LOG_MIN_DB, LOG_MAX_DB),
)

# Quadratic: slow start, fast finish. Negative input to the root reads as 0
exponential = TransformPair(lambda x: x ** 2, lambda y: math.sqrt(max(0.0, y)))

square_root = TransformPair(lambda x: math.sqrt(max(0.0, x)), lambda y: y ** 2)

cubic = TransformPair(lambda x: x ** 3, _cbrt)

# Quarter sine, maps [0,1] onto [0,1] with ease-out. The inverse clamps to [-1, 1]
sine = TransformPair(
    lambda x: math.sin(x * math.pi / 2),
    lambda y: (2 / math.pi) * math.asin(min(1.0, max(-1.0, y))),
)

inverse_sine = TransformPair(sine.inverse, sine.forward)


def logarithmic_custom(min_db: float = LOG_MIN_DB, max_db: float = LOG_MAX_DB) -> TransformPair:
    """Build a logarithmic pair over an arbitrary dB range.

    Args:
        min_db: Gain at x=0, in dB
        max_db: Gain at x=1, in dB

    Raises:
        ValueError: If the range is empty
    """
    if min_db == max_db:
        raise ValueError(f"dB range must not be empty, got {min_db}..{max_db}")
    return TransformPair(
        lambda x: _db_forward(x, min_db, max_db),
        lambda y: _db_inverse(y, min_db, max_db),
    )


Point = Union[Tuple[float, float], Dict[str, float]]


def _as_xy(point: Point) -> Tuple[float, float]:
    if isinstance(point, dict):
        return float(point["x"]), float(point["y"])
    x, y = point
    return float(x), float(y)


def _interpolate(v: float, table: List[Tuple[float, float]]) -> float:
    """Piecewise linear lookup on a table sorted by its first column."""
    if v <= table[0][0]:
        return table[0][1]
    if v >= table[-1][0]:
        return table[-1][1]

    for (x0, y0), (x1, y1) in zip(table, table[1:]):
        if x0 <= v <= x1:
            if x1 == x0:
                return y0
            t = (v - x0) / (x1 - x0)
            return y0 + t * (y1 - y0)
    return v


def piecewise_linear(points: Iterable[Point]) -> TransformPair:
    """Build a pair from control points with linear interpolation.

    Points are sorted by x and deduplicated on x (first occurrence wins).
    Inputs outside the table clamp to the first/last point. The inverse
    walks the same table by y, which is only a true inverse for
    monotonically increasing tables.

    Args:
        points: {"x": .., "y": ..} mappings or (x, y) pairs

    Returns:
        TransformPair

    Raises:
        ValueError: If fewer than two distinct points remain

    Example:
        >>> curve = piecewise_linear([(0, 0), (0.5, 0.3), (1, 1)])
        >>> curve.forward(0.25)
        0.15
    """
    deduped: Dict[float, float] = {}
    for point in points:
        x, y = _as_xy(point)
        deduped.setdefault(x, y)

    table = sorted(deduped.items())
    if len(table) < 2:
        raise ValueError(f"Piecewise table needs at least 2 distinct points, got {len(table)}")

    inverse_table = sorted((y, x) for x, y in table)

    return TransformPair(
        lambda x: _interpolate(x, table),
        lambda y: _interpolate(y, inverse_table),
    )


# Named pairs usable from configuration files
TRANSFORMS: Dict[str, TransformPair] = {
    "linear": linear,
    "logarithmic": logarithmic,
    "exponential": exponential,
    "square_root": square_root,
    "cubic": cubic,
    "sine": sine,
    "inverse_sine": inverse_sine,
}


def get_transform(name: str) -> TransformPair:
    """Look up a named transform pair.

    Raises:
        KeyError: If the name is unknown
    """
    try:
        return TRANSFORMS[name]
    except KeyError:
        raise KeyError(f"Unknown transform '{name}' (known: {', '.join(sorted(TRANSFORMS))})")
