#!/usr/bin/env python3
"""
Orbiter Sensor Controller - device motion → x/y/z/distance parameters.

Receives orientation and motion streams from a phone or IMU over OSC and
maps them onto normalized parameter writes.

INPUT (PORT_SENSORS, default 9002):
    /sensor/orientation  [alpha, beta, gamma]   degrees (yaw, pitch, roll)
    /sensor/motion       [acc_y, timestamp_ms]  m/s² including gravity
    /sensor/calibrate    []                     zero on current pose

ORIENTATION MAPPING:
    1. Subtract calibration offsets (when calibrated)
    2. Euler (beta, gamma, alpha) in YXZ order → unit quaternion
    3. Flip sign if the new quaternion is in the opposite hemisphere, so
       the path never jumps across the double cover
    4. Slerp the tracked quaternion toward the new one (ORIENTATION_SLERP)
    5. Quaternion x/y/z components [-1, 1] → [0, 1]
    6. Exponential smoothing (AXIS_SMOOTHING) per axis
    7. set_normalized_value() for each active axis

DISTANCE ESTIMATE:
    Y acceleration is low-pass filtered and integrated twice. The absolute
    position is normalized against DISTANCE_RANGE_M. Velocity and
    position decay while the device is still to limit drift. Motion is
    ignored until the controller is calibrated.

All axes start inactive; set_axis_active() enables them.
"""

import threading
from typing import Dict, Optional, Tuple

import numpy as np
from pythonosc import dispatcher

from orbiter import osc
from orbiter.log import get_logger
from orbiter.parameters import ParameterRegistry
from orbiter.priority import get_priority

logger = get_logger("sensors")


# ============================================================================
# CONSTANTS
# ============================================================================

AXES = ("x", "y", "z", "distance")

ORIENTATION_SLERP = 0.9     # Fraction of the way toward each new reading
AXIS_SMOOTHING = 0.8        # Weight of the previous axis value
MOTION_FILTER = 0.8         # Weight of the newest acceleration sample
DISTANCE_RANGE_M = 0.8      # Position mapped to distance = 1.0
STATIONARY_THRESHOLD = 0.05  # |filtered acc| below this counts as still
STATIONARY_DAMPING = 0.9


# ============================================================================
# QUATERNION HELPERS
# ============================================================================

def euler_yxz_to_quaternion(x: float, y: float, z: float) -> np.ndarray:
    """Convert Euler angles (radians, YXZ order) to a quaternion [x, y, z, w]."""
    c1, c2, c3 = np.cos(x / 2), np.cos(y / 2), np.cos(z / 2)
    s1, s2, s3 = np.sin(x / 2), np.sin(y / 2), np.sin(z / 2)

    q = np.array([
        s1 * c2 * c3 + c1 * s2 * s3,
        c1 * s2 * c3 - s1 * c2 * s3,
        c1 * c2 * s3 - s1 * s2 * c3,
        c1 * c2 * c3 + s1 * s2 * s3,
    ])
    return q / np.linalg.norm(q)


def slerp(q0: np.ndarray, q1: np.ndarray, t: float) -> np.ndarray:
    """Spherical interpolation between unit quaternions."""
    dot = float(np.dot(q0, q1))
    if dot < 0.0:
        q1 = -q1
        dot = -dot

    if dot > 0.9995:
        q = q0 + t * (q1 - q0)
        return q / np.linalg.norm(q)

    theta_0 = np.arccos(dot)
    theta = theta_0 * t
    sin_theta_0 = np.sin(theta_0)
    s0 = np.sin(theta_0 - theta) / sin_theta_0
    s1 = np.sin(theta) / sin_theta_0
    return s0 * q0 + s1 * q1


def map_range(value: float, in_min: float, in_max: float,
              out_min: float = 0.0, out_max: float = 1.0) -> float:
    """Linear map between ranges, clamped to the output range."""
    mapped = (value - in_min) / (in_max - in_min) * (out_max - out_min) + out_min
    return float(np.clip(mapped, out_min, out_max))


def smooth_value(old: float, new: float, alpha: float = AXIS_SMOOTHING) -> float:
    """Exponential smoothing; higher alpha keeps more of the old value."""
    return alpha * old + (1 - alpha) * new


# ============================================================================
# SENSOR CONTROLLER
# ============================================================================

class SensorController:
    """Motion sensor input source.

    Writes only; it never subscribes, so it has no echo to suppress.

    Args:
        registry: Shared parameter registry
        listen_port: Port for /sensor/* messages
    """

    def __init__(self, registry: ParameterRegistry, listen_port: int = osc.PORT_SENSORS):
        osc.validate_port(listen_port)
        self.registry = registry
        self.listen_port = listen_port

        self.active_axes: Dict[str, bool] = {axis: False for axis in AXES}
        self.priorities = {axis: get_priority(f"sensor-{axis}") for axis in AXES}

        # Normalized axis values, 0.5 is centre
        self.values: Dict[str, float] = {"x": 0.5, "y": 0.5, "z": 0.5, "distance": 0.0}

        self.quaternion = np.array([0.0, 0.0, 0.0, 1.0])

        self.calibrated = False
        self.offsets: Tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.last_orientation: Optional[Tuple[float, float, float]] = None

        # Motion integration state
        self.initial_acc_y = 0.0
        self.last_acc_y: Optional[float] = None
        self.filtered_acc_y = 0.0
        self.velocity_y = 0.0
        self.position_y = 0.0
        self.last_timestamp_ms: Optional[float] = None

        self.stats = osc.MessageStatistics()
        self.server: Optional[osc.ReusePortBlockingOSCUDPServer] = None
        self.server_thread: Optional[threading.Thread] = None

    def set_axis_active(self, axis: str, active: bool) -> None:
        if axis not in self.active_axes:
            raise ValueError(f"Unknown sensor axis '{axis}' (expected one of {', '.join(AXES)})")
        self.active_axes[axis] = active
        logger.info(f"Axis '{axis.upper()}' is now {'active' if active else 'inactive'}")

    def calibrate(self) -> bool:
        """Use the latest orientation as the zero pose.

        Returns:
            False if no orientation has been received yet
        """
        if self.last_orientation is None:
            logger.warning("No sensor data available yet, cannot calibrate")
            return False

        self.offsets = self.last_orientation
        if self.last_acc_y is not None:
            self.initial_acc_y = self.last_acc_y
        self.velocity_y = 0.0
        self.position_y = 0.0
        self.last_timestamp_ms = None
        self.calibrated = True
        logger.info(f"Calibration completed at alpha={self.offsets[0]:.1f} "
                    f"beta={self.offsets[1]:.1f} gamma={self.offsets[2]:.1f}")
        return True

    def process_orientation(self, alpha: float, beta: float, gamma: float) -> None:
        """Map one orientation reading onto the x/y/z parameters."""
        self.last_orientation = (alpha, beta, gamma)

        if self.calibrated:
            alpha -= self.offsets[0]
            beta -= self.offsets[1]
            gamma -= self.offsets[2]

        new_q = euler_yxz_to_quaternion(np.radians(beta), np.radians(gamma), np.radians(alpha))
        if np.dot(self.quaternion, new_q) < 0:
            new_q = -new_q

        self.quaternion = slerp(self.quaternion, new_q, ORIENTATION_SLERP)

        for index, axis in enumerate(("x", "y", "z")):
            if not self.active_axes[axis]:
                continue
            target = map_range(float(self.quaternion[index]), -1.0, 1.0)
            self.values[axis] = smooth_value(self.values[axis], target)
            self.registry.set_normalized_value(axis, self.values[axis], self, self.priorities[axis])

    def process_motion(self, acc_y: float, timestamp_ms: float) -> None:
        """Integrate Y acceleration into the distance parameter."""
        self.last_acc_y = acc_y
        if not self.calibrated:
            return

        dt = 0.0 if self.last_timestamp_ms is None else (timestamp_ms - self.last_timestamp_ms) / 1000.0
        self.last_timestamp_ms = timestamp_ms

        delta_acc = acc_y - self.initial_acc_y
        self.filtered_acc_y = MOTION_FILTER * delta_acc + (1 - MOTION_FILTER) * self.filtered_acc_y

        self.velocity_y += self.filtered_acc_y * dt
        self.position_y += self.velocity_y * dt

        distance = min(abs(self.position_y) / DISTANCE_RANGE_M, 1.0)
        self.values["distance"] = distance

        if self.active_axes["distance"]:
            self.registry.set_normalized_value("distance", distance, self, self.priorities["distance"])

        if abs(self.filtered_acc_y) < STATIONARY_THRESHOLD:
            self.velocity_y *= STATIONARY_DAMPING
            self.position_y *= STATIONARY_DAMPING

    # ------------------------------------------------------------------
    # OSC
    # ------------------------------------------------------------------

    def handle_sensor_message(self, address: str, *args) -> None:
        """Handle /sensor/orientation, /sensor/motion and /sensor/calibrate."""
        self.stats.increment('total_messages')

        is_valid, kind, error_msg = osc.validate_sensor_address(address)
        if not is_valid:
            self.stats.increment('invalid_messages')
            logger.debug(error_msg)
            return

        expected = {"orientation": 3, "motion": 2, "calibrate": 0}[kind]
        if len(args) != expected:
            self.stats.increment('invalid_messages')
            logger.warning(f"{address} expects {expected} arguments, got {len(args)}")
            return

        try:
            values = [float(arg) for arg in args]
        except (ValueError, TypeError) as e:
            self.stats.increment('invalid_messages')
            logger.warning(f"Invalid arguments for {address}: {args} ({e})")
            return

        self.stats.increment('valid_messages')

        if kind == "orientation":
            self.process_orientation(*values)
        elif kind == "motion":
            self.process_motion(*values)
        else:
            self.calibrate()

    def start(self) -> None:
        """Start listening for sensor streams on a background thread."""
        disp = dispatcher.Dispatcher()
        disp.map("/sensor/*", self.handle_sensor_message)

        self.server = osc.ReusePortBlockingOSCUDPServer(("0.0.0.0", self.listen_port), disp)
        self.server_thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.server_thread.start()

        logger.info(f"Sensor controller listening on port {self.listen_port}")

    def shutdown(self) -> None:
        if self.server is not None:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
        self.stats.print_stats("SENSOR STATISTICS")
