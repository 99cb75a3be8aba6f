#!/usr/bin/env python3
"""
Command-line OSC sender for poking a running Orbiter.

Usage:
    python -m orbiter.cli <address> [arg1] [arg2] ...

Examples:
    python -m orbiter.cli /param/x 0.25
    python -m orbiter.cli /param/body-level/raw 0.5 1
    python -m orbiter.cli /param/z/middle
    python -m orbiter.cli /sensor/calibrate
"""

import sys
from typing import Optional

from orbiter.osc import BroadcastUDPClient, PORT_PARAMS, PORT_SENSORS


def infer_port(address: str) -> int:
    """Infer the OSC port from the message address.

    - /sensor/* → PORT_SENSORS (9002)
    - everything else → PORT_PARAMS (9000)
    """
    if address.startswith("/sensor/"):
        return PORT_SENSORS
    return PORT_PARAMS


def parse_argument(arg: str):
    """Parse a command-line argument to int, float, or leave it a string."""
    try:
        return int(arg)
    except ValueError:
        pass
    try:
        return float(arg)
    except ValueError:
        pass
    return arg


def send_osc_message(address: str, args: list, port: Optional[int] = None,
                     host: str = "255.255.255.255"):
    """Send an OSC message to the engine."""
    if port is None:
        port = infer_port(address)

    with BroadcastUDPClient(host, port) as client:
        client.send_message(address, args)
        print(f"Sent to {host}:{port} → {address} {args}")


def main():
    """CLI entry point for sending OSC messages."""
    if len(sys.argv) < 2:
        print("Usage: python -m orbiter.cli <address> [arg1] [arg2] ...")
        print()
        print("Examples:")
        print("  python -m orbiter.cli /param/x 0.25")
        print("  python -m orbiter.cli /param/body-level/raw 0.5 1")
        print("  python -m orbiter.cli /param/z/middle")
        print()
        print("Ports are inferred from address:")
        print(f"  /sensor/*       → PORT_SENSORS ({PORT_SENSORS})")
        print(f"  everything else → PORT_PARAMS ({PORT_PARAMS})")
        sys.exit(1)

    address = sys.argv[1]
    args = [parse_argument(arg) for arg in sys.argv[2:]]

    send_osc_message(address, args)


if __name__ == "__main__":
    main()
