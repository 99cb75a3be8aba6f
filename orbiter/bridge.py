#!/usr/bin/env python3
"""
Orbiter Widget Bridge - remote UI widgets ↔ parameter registry over OSC.

Knobs, sliders and switches on a remote surface (a tablet, a browser
front end, TouchOSC) write parameters by sending OSC to PORT_PARAMS, and
are kept in sync by feedback broadcast to PORT_FEEDBACK.

The whole surface is one controller as far as the registry is concerned:
a knob turned on the surface is not echoed back to it unless the
parameter is bidirectional.

INPUT (PORT_PARAMS, default 9000):
    /param/<name>          [normalized]            → set_normalized_value
    /param/<name>          [normalized, priority]
    /param/<name>/raw      [raw] or [raw, priority] → set_raw_value
    /param/<name>/middle   []                      → set_to_middle

OUTPUT (PORT_FEEDBACK, default 9001, broadcast):
    /param/<name>          [value]       output-transformed value
    /range/<name>          [min, max]
    /scale/<name>          [scale]
"""

import threading
from typing import Iterable, Optional

from pythonosc import dispatcher

from orbiter import osc
from orbiter.log import get_logger
from orbiter.parameters import Controller, ParameterRegistry
from orbiter.priority import get_priority

logger = get_logger("bridge")


class OscBridge(Controller):
    """Remote widget surface as a registry controller.

    Args:
        registry: Shared parameter registry
        feedback_client: OSC client for feedback (default: broadcast client)
        listen_port: Port for incoming /param/* writes
        controller_type: Key into PRIORITY_MAP for writes without an
            explicit priority
    """

    def __init__(self, registry: ParameterRegistry, feedback_client=None,
                 listen_port: int = osc.PORT_PARAMS,
                 feedback_host: str = "255.255.255.255",
                 feedback_port: int = osc.PORT_FEEDBACK,
                 controller_type: str = "webaudio-knob"):
        osc.validate_port(listen_port)
        osc.validate_port(feedback_port)

        self.registry = registry
        self.listen_port = listen_port
        self.priority = get_priority(controller_type)
        self.feedback_client = feedback_client or osc.BroadcastUDPClient(feedback_host, feedback_port)

        self.stats = osc.MessageStatistics()
        self.server: Optional[osc.ReusePortBlockingOSCUDPServer] = None
        self.server_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Registry side
    # ------------------------------------------------------------------

    def attach(self, names: Optional[Iterable[str]] = None) -> None:
        """Subscribe to parameters so the surface receives feedback.

        Args:
            names: Parameters to follow (default: every registered one)
        """
        if names is None:
            names = [param.name for param in self.registry.list_parameters()]
        for name in names:
            self.registry.subscribe(self, name, self.priority)

    def detach(self) -> None:
        for param in self.registry.list_parameters():
            if param.find_subscription(self) is not None:
                self.registry.unsubscribe(self, param.name)

    def on_parameter_changed(self, name: str, value: float) -> None:
        self.feedback_client.send_message(f"/param/{name}", [float(value)])
        self.stats.increment('feedback_messages')

    def on_range_changed(self, name: str, min_value: float, max_value: float) -> None:
        self.feedback_client.send_message(f"/range/{name}", [float(min_value), float(max_value)])
        self.stats.increment('feedback_messages')

    def on_scale_changed(self, name: str, scale: str) -> None:
        self.feedback_client.send_message(f"/scale/{name}", [scale])
        self.stats.increment('feedback_messages')

    # ------------------------------------------------------------------
    # OSC side
    # ------------------------------------------------------------------

    def handle_param_message(self, address: str, *args) -> None:
        """Handle /param/<name>[/raw|/middle] from a widget surface.

        Args:
            address: OSC address (e.g., "/param/x")
            *args: [value] or [value, priority]; none for /middle
        """
        self.stats.increment('total_messages')

        is_valid, name, action, error_msg = osc.validate_param_address(address)
        if not is_valid:
            self.stats.increment('invalid_messages')
            logger.warning(error_msg)
            return

        if action == osc.ACTION_MIDDLE:
            self.stats.increment('valid_messages')
            self.registry.set_to_middle(name)
            return

        if len(args) not in (1, 2):
            self.stats.increment('invalid_messages')
            logger.warning(f"{address} expects 1-2 arguments, got {len(args)}")
            return

        try:
            value = float(args[0])
            priority = float(args[1]) if len(args) == 2 else self.priority
        except (ValueError, TypeError) as e:
            self.stats.increment('invalid_messages')
            logger.warning(f"Invalid arguments for {address}: {args} ({e})")
            return

        self.stats.increment('valid_messages')

        if action == osc.ACTION_RAW:
            accepted = self.registry.set_raw_value(name, value, self, priority)
        else:
            accepted = self.registry.set_normalized_value(name, value, self, priority)

        if not accepted:
            self.stats.increment('rejected_writes')

    def start(self) -> None:
        """Start listening for widget writes on a background thread."""
        disp = dispatcher.Dispatcher()
        # /param/<name>/raw spans two segments, so route everything here
        disp.set_default_handler(self.handle_param_message)

        self.server = osc.ReusePortBlockingOSCUDPServer(("0.0.0.0", self.listen_port), disp)
        self.server_thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.server_thread.start()

        logger.info(f"Widget bridge listening on port {self.listen_port}")

    def shutdown(self) -> None:
        """Stop the server and close the feedback socket."""
        if self.server is not None:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
        if hasattr(self.feedback_client, "close"):
            self.feedback_client.close()
        self.stats.print_stats("WIDGET BRIDGE STATISTICS")
