#!/usr/bin/env python3
"""
Orbiter OSC Infrastructure - Shared OSC networking and validation utilities.

Provides the OSC server classes, address validation, port constants and
statistics tracking used by the remote widget bridge and the sensor
controller.

Classes:
    - ReusePortBlockingOSCUDPServer: Blocking OSC server with SO_REUSEPORT
    - BroadcastUDPClient: SimpleUDPClient with SO_BROADCAST
    - MessageStatistics: Thread-safe message counter with formatted output

Functions:
    - validate_param_address(address): Parse /param/<name>[/raw|/middle]
    - validate_sensor_address(address): Parse /sensor/<kind>
    - validate_port(port): Validate port in range 1-65535

Constants:
    - PORT_PARAMS: Incoming parameter writes (9000)
    - PORT_FEEDBACK: Outgoing value/range/scale feedback (9001)
    - PORT_SENSORS: Sensor streams (9002)
"""

import re
import socket
import threading
from typing import Optional, Tuple
from pythonosc import osc_server
from pythonosc import udp_client


# ============================================================================
# CONSTANTS
# ============================================================================

PORT_PARAMS = 9000     # Widget surfaces → Orbiter (/param/*)
PORT_FEEDBACK = 9001   # Orbiter → widget surfaces (/param/*, /range/*, /scale/*)
PORT_SENSORS = 9002    # Phones / IMUs → Orbiter (/sensor/*)

PORT_MIN = 1
PORT_MAX = 65535

# Actions encoded as an optional trailing address segment
ACTION_NORMALIZED = "normalized"
ACTION_RAW = "raw"
ACTION_MIDDLE = "middle"

# Parameter names: letters, digits, dash, underscore, dot
PARAM_ADDRESS_PATTERN = re.compile(r'^/param/([A-Za-z0-9_.\-]+)(?:/(raw|middle))?$')
SENSOR_ADDRESS_PATTERN = re.compile(r'^/sensor/(orientation|motion|calibrate)$')


# ============================================================================
# SO_REUSEPORT SERVER CLASSES
# ============================================================================

class ReusePortBlockingOSCUDPServer(osc_server.BlockingOSCUDPServer):
    """BlockingOSCUDPServer with SO_REUSEPORT socket option enabled.

    Lets several processes (the engine, a monitor) bind the same port and
    receive the same widget traffic. Without SO_REUSEPORT support binding
    proceeds as a plain single-process bind.
    """

    def server_bind(self):
        if hasattr(socket, 'SO_REUSEPORT'):
            self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        self.socket.bind(self.server_address)
        self.server_address = self.socket.getsockname()


# ============================================================================
# BROADCAST UDP CLIENT
# ============================================================================

class BroadcastUDPClient(udp_client.SimpleUDPClient):
    """UDP client with SO_BROADCAST enabled for broadcasting OSC messages.

    Feedback goes to 255.255.255.255 by default so every widget surface on
    the LAN sees value changes made elsewhere.

    Args:
        address: Target IP address (use "255.255.255.255" for broadcast)
        port: Target UDP port
    """

    def __init__(self, address: str, port: int):
        super().__init__(address, port)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

    def close(self):
        """Close the UDP socket."""
        if hasattr(self, '_sock') and self._sock:
            self._sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def validate_param_address(address: str) -> Tuple[bool, Optional[str], Optional[str], Optional[str]]:
    """Validate a parameter write address and extract name and action.

    Args:
        address: OSC address string (e.g., "/param/body-level/raw")

    Returns:
        Tuple of (is_valid, name, action, error_message):
            - action is ACTION_NORMALIZED, ACTION_RAW or ACTION_MIDDLE

    Examples:
        >>> validate_param_address("/param/x")
        (True, 'x', 'normalized', None)
        >>> validate_param_address("/param/x/raw")
        (True, 'x', 'raw', None)
        >>> validate_param_address("/param/")
        (False, None, None, 'Invalid address pattern: /param/')
    """
    match = PARAM_ADDRESS_PATTERN.match(address)
    if not match:
        return False, None, None, f"Invalid address pattern: {address}"
    action = match.group(2) or ACTION_NORMALIZED
    return True, match.group(1), action, None


def validate_sensor_address(address: str) -> Tuple[bool, Optional[str], Optional[str]]:
    """Validate a sensor address and extract its kind.

    Examples:
        >>> validate_sensor_address("/sensor/orientation")
        (True, 'orientation', None)
    """
    match = SENSOR_ADDRESS_PATTERN.match(address)
    if not match:
        return False, None, f"Invalid address pattern: {address}"
    return True, match.group(1), None


def validate_port(port: int) -> None:
    """Validate UDP port number is in valid range.

    Raises:
        ValueError: If port is outside range 1-65535
    """
    if port < PORT_MIN or port > PORT_MAX:
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


# ============================================================================
# MESSAGE STATISTICS
# ============================================================================

class MessageStatistics:
    """Thread-safe message statistics tracker with formatted output.

    Typical counters:
        - total_messages: All received OSC messages
        - valid_messages: Messages that passed validation
        - invalid_messages: Messages that failed validation
        - rejected_writes: Writes that lost arbitration
        - feedback_messages: Feedback messages sent

    Examples:
        >>> stats = MessageStatistics()
        >>> stats.increment('total_messages')
        >>> stats.get('total_messages')
        1
    """

    def __init__(self):
        self.counters = {}
        self.lock = threading.Lock()

    def increment(self, counter_name: str, amount: int = 1) -> None:
        """Increment a counter by specified amount (thread-safe)."""
        with self.lock:
            self.counters[counter_name] = self.counters.get(counter_name, 0) + amount

    def get(self, counter_name: str) -> int:
        """Get current value of a counter, 0 if it doesn't exist."""
        with self.lock:
            return self.counters.get(counter_name, 0)

    def print_stats(self, title: str = "STATISTICS") -> None:
        """Print counters in sorted order between separator lines."""
        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)

        with self.lock:
            snapshot = dict(self.counters)

        for name in sorted(snapshot.keys()):
            display_name = name.replace('_', ' ').title()
            print(f"{display_name}: {snapshot[name]}")

        print("=" * 60)
