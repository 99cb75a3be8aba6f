"""
Tests for the motion sensor controller
"""

from unittest.mock import patch

import numpy as np
import pytest

from orbiter.priority import get_priority
from orbiter.sensors import (
    SensorController,
    euler_yxz_to_quaternion,
    map_range,
    slerp,
    smooth_value,
)


@pytest.fixture
def sensors(registry):
    for axis in ("x", "y", "z"):
        registry.add_or_update_parameter(axis, 0, -100, 100, is_bidirectional=True)
    registry.add_or_update_parameter("distance", 0, 0, 1)
    return SensorController(registry)


class TestHelpers:
    """Quaternion and smoothing helpers."""

    def test_zero_euler_is_identity(self):
        np.testing.assert_allclose(euler_yxz_to_quaternion(0, 0, 0), [0, 0, 0, 1])

    def test_quarter_turn_about_x(self):
        q = euler_yxz_to_quaternion(np.pi / 2, 0, 0)
        np.testing.assert_allclose(q, [np.sqrt(0.5), 0, 0, np.sqrt(0.5)], atol=1e-9)

    def test_quaternion_is_unit(self):
        q = euler_yxz_to_quaternion(0.3, -1.2, 2.0)
        assert np.linalg.norm(q) == pytest.approx(1.0)

    def test_slerp_endpoints(self):
        q0 = np.array([0.0, 0.0, 0.0, 1.0])
        q1 = euler_yxz_to_quaternion(0, np.pi / 2, 0)
        np.testing.assert_allclose(slerp(q0, q1, 0.0), q0, atol=1e-9)
        np.testing.assert_allclose(slerp(q0, q1, 1.0), q1, atol=1e-9)

    def test_slerp_takes_short_path(self):
        q0 = np.array([0.0, 0.0, 0.0, 1.0])
        q1 = -euler_yxz_to_quaternion(0.2, 0, 0)
        result = slerp(q0, q1, 0.5)
        assert result[3] > 0

    def test_map_range(self):
        assert map_range(0.0, -1.0, 1.0) == 0.5
        assert map_range(5.0, -1.0, 1.0) == 1.0
        assert map_range(-5.0, -1.0, 1.0) == 0.0

    def test_smooth_value(self):
        assert smooth_value(0.5, 1.0) == pytest.approx(0.6)
        assert smooth_value(0.5, 1.0, alpha=0.0) == 1.0


class TestAxes:
    """Axis activation and initial state."""

    def test_initial_state(self, sensors):
        assert not any(sensors.active_axes.values())
        assert sensors.values == {"x": 0.5, "y": 0.5, "z": 0.5, "distance": 0.0}
        assert sensors.priorities["x"] == get_priority("sensor-x")
        assert sensors.priorities["distance"] == get_priority("sensor-distance")
        assert sensors.calibrated is False

    def test_unknown_axis(self, sensors):
        with pytest.raises(ValueError, match="Unknown sensor axis"):
            sensors.set_axis_active("w", True)

    def test_inactive_axes_do_not_write(self, sensors, registry):
        sensors.process_orientation(0, 90, 45)

        for axis in ("x", "y", "z"):
            assert registry.get_raw_value(axis) == 0
            assert registry.get_parameter(axis).last_controller is None


class TestOrientation:
    """Orientation → x/y/z writes."""

    def test_level_pose_is_centre(self, sensors, registry):
        sensors.set_axis_active("x", True)
        sensors.process_orientation(0, 0, 0)

        assert registry.get_normalized_value("x") == pytest.approx(0.5)
        snapshot = registry.get_parameter("x")
        assert snapshot.last_controller is sensors
        assert snapshot.last_priority == get_priority("sensor-x")

    def test_pitch_moves_x_only(self, sensors, registry):
        for axis in ("x", "y", "z"):
            sensors.set_axis_active(axis, True)

        sensors.process_orientation(0, 90, 0)

        assert sensors.values["x"] > 0.5
        assert registry.get_raw_value("x") > 0
        assert registry.get_normalized_value("y") == pytest.approx(0.5)
        assert registry.get_normalized_value("z") == pytest.approx(0.5)

    def test_smoothing_converges(self, sensors):
        sensors.set_axis_active("x", True)
        first = None
        for _ in range(50):
            sensors.process_orientation(0, 90, 0)
            if first is None:
                first = sensors.values["x"]

        expected = map_range(np.sin(np.pi / 4), -1.0, 1.0)
        assert first < sensors.values["x"]
        assert sensors.values["x"] == pytest.approx(expected, abs=1e-3)

    def test_higher_priority_controller_wins(self, sensors, registry, clock, make_controller):
        knob = make_controller("knob")
        sensors.set_axis_active("x", True)
        registry.set_raw_value("x", -50, knob, get_priority("webaudio-knob"))

        clock.advance_ms(10)
        sensors.process_orientation(0, 90, 0)

        assert registry.get_raw_value("x") == -50


class TestCalibration:
    """Zero pose and motion integration."""

    def test_calibrate_without_data(self, sensors):
        with patch('orbiter.sensors.logger'):
            assert sensors.calibrate() is False
        assert sensors.calibrated is False

    def test_calibrate_zeroes_current_pose(self, sensors, registry):
        sensors.set_axis_active("x", True)
        sensors.process_orientation(10, 90, 0)
        assert sensors.calibrate() is True
        assert sensors.offsets == (10, 90, 0)

        for _ in range(50):
            sensors.process_orientation(10, 90, 0)

        assert sensors.values["x"] == pytest.approx(0.5, abs=1e-3)

    def test_motion_ignored_until_calibrated(self, sensors, registry):
        sensors.set_axis_active("distance", True)
        sensors.process_motion(12.0, 0)
        sensors.process_motion(12.0, 100)

        assert registry.get_raw_value("distance") == 0
        assert sensors.position_y == 0.0

    def test_motion_integrates_into_distance(self, sensors, registry):
        sensors.set_axis_active("distance", True)
        sensors.process_orientation(0, 0, 0)
        sensors.process_motion(9.81, 0)
        sensors.calibrate()
        assert sensors.initial_acc_y == 9.81

        sensors.process_motion(10.81, 0)
        sensors.process_motion(10.81, 100)

        assert sensors.velocity_y > 0
        assert 0 < registry.get_raw_value("distance") <= 1
        assert registry.get_parameter("distance").last_controller is sensors

    def test_distance_saturates(self, sensors, registry):
        sensors.set_axis_active("distance", True)
        sensors.process_orientation(0, 0, 0)
        sensors.calibrate()

        for step in range(30):
            sensors.process_motion(20.0, step * 100)

        assert sensors.values["distance"] == 1.0
        assert registry.get_raw_value("distance") == 1.0


class TestHandleSensorMessage:
    """OSC message routing."""

    def test_orientation(self, sensors, registry):
        sensors.set_axis_active("x", True)
        sensors.handle_sensor_message("/sensor/orientation", 0, 90, 0)

        assert sensors.stats.get("valid_messages") == 1
        assert registry.get_raw_value("x") > 0

    def test_calibrate(self, sensors):
        sensors.handle_sensor_message("/sensor/orientation", 1, 2, 3)
        sensors.handle_sensor_message("/sensor/calibrate")

        assert sensors.calibrated is True

    @pytest.mark.parametrize("address,args", [
        ("/sensor/gps", (1, 2)),
        ("/sensor/orientation", (1, 2)),
        ("/sensor/motion", ("up", 0)),
        ("/sensor/calibrate", (1,)),
    ])
    def test_invalid(self, sensors, address, args):
        with patch('orbiter.sensors.logger'):
            sensors.handle_sensor_message(address, *args)

        assert sensors.stats.get("invalid_messages") == 1
        assert sensors.stats.get("valid_messages") == 0


class TestLifecycle:
    """Server start/shutdown."""

    def test_start_and_shutdown(self, sensors):
        with patch('orbiter.sensors.osc.ReusePortBlockingOSCUDPServer') as mock_server_cls, \
                patch('orbiter.sensors.threading.Thread'):
            sensors.start()
            server = mock_server_cls.return_value
            sensors.shutdown()

        assert mock_server_cls.call_args[0][0] == ("0.0.0.0", sensors.listen_port)
        server.shutdown.assert_called_once()
        assert sensors.server is None
