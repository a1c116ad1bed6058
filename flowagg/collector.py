"""Collector command: options, mapping loading, health endpoint and lifecycle."""

from __future__ import annotations

import argparse
import http
import logging
import re
import signal
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import yaml

from flowagg.listen import DEFAULT_LISTEN_ADDRESSES, ListenAddressError, parse_listen_addresses
from flowagg.logsetup import LogLevelError, configure_logging, parse_log_level

logger = logging.getLogger(__name__)

VERSION = ""
BUILDINFOS = ""
APP_VERSION = "Collector " + VERSION + " " + BUILDINFOS

_DURATION_PART = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _parse_duration(text):
    """Parse a duration such as ``10s`` or ``1m30s`` into seconds."""
    body, sign = text, 1.0
    if body and body[0] in "+-":
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]
    if body == "0":
        return 0.0
    if not body:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    total, pos = 0.0, 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if match is None or match.group(1) in ("", "."):
            raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


@dataclass
class CollectorOptions:
    """Command line options of the collector."""

    listen: str = DEFAULT_LISTEN_ADDRESSES
    loglevel: str = "info"
    logfmt: str = "normal"
    produce: str = "sample"
    format: str = "json"
    transport: str = "file"
    err_cnt: int = 10
    err_int: float = 10.0
    addr: str = ":8080"
    templates_path: str = "/templates"
    mapping: str = ""
    version: bool = False


class HealthState:
    """Whether the collector is currently collecting."""

    def __init__(self):
        self._collecting = threading.Event()

    def status(self):
        """Return the HTTP status and body of the health check."""
        if self._collecting.is_set():
            return http.HTTPStatus.OK, "OK\n"
        return http.HTTPStatus.SERVICE_UNAVAILABLE, "Not OK\n"

    def set_collecting(self, collecting):
        if collecting:
            self._collecting.set()
        else:
            self._collecting.clear()


def _split_host_port(address):
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not port.isdigit():
        raise ValueError(f"invalid port in address {address!r}")
    return host, int(port)


def make_health_server(address, state):
    """Create an HTTP server answering ``/__health`` from ``state``; call serve_forever on it."""

    class _Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path.split("?", 1)[0] != "/__health":
                self.send_error(http.HTTPStatus.NOT_FOUND)
                return
            code, body = state.status()
            payload = body.encode("utf-8")
            self.send_response(code)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            try:
                self.wfile.write(payload)
            except OSError as exc:
                logger.error("error writing HTTP", extra={"attrs": {"error": str(exc)}})

        def log_message(self, format, *args):
            logger.debug(format, *args)

    return ThreadingHTTPServer(_split_host_port(address), _Handler)


def load_mapping(stream):
    """Read a YAML producer mapping; the document must be a mapping."""
    try:
        config = yaml.safe_load(stream)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid mapping: {exc}") from exc
    if config is None:
        raise ValueError("empty mapping document")
    if not isinstance(config, dict):
        raise ValueError("mapping document must be a YAML mapping")
    return config


def parse_args(argv=None):
    """Parse the collector's command line into CollectorOptions."""
    d = CollectorOptions()
    parser = argparse.ArgumentParser(prog="collector", allow_abbrev=False)
    parser.add_argument("-listen", "--listen", default=d.listen, help="listen addresses")
    parser.add_argument("-loglevel", "--loglevel", default=d.loglevel, help="Log level")
    parser.add_argument("-logfmt", "--logfmt", default=d.logfmt, help="Log formatter")
    parser.add_argument("-produce", "--produce", default=d.produce, help="Producer method (sample or raw)")
    parser.add_argument("-format", "--format", default=d.format, help="Choose the format")
    parser.add_argument("-transport", "--transport", default=d.transport, help="Choose the transport")
    parser.add_argument(
        "-err.cnt", "--err.cnt", dest="err_cnt", type=int, default=d.err_cnt,
        help="Maximum errors per batch for muting",
    )
    parser.add_argument(
        "-err.int", "--err.int", dest="err_int", type=_parse_duration, default=d.err_int,
        help="Maximum errors interval for muting",
    )
    parser.add_argument("-addr", "--addr", default=d.addr, help="HTTP server address")
    parser.add_argument(
        "-templates.path", "--templates.path", dest="templates_path", default=d.templates_path,
        help="NetFlow/IPFIX templates list",
    )
    parser.add_argument("-mapping", "--mapping", default=d.mapping, help="Configuration file for custom mappings")
    parser.add_argument("-v", "--v", dest="version", action="store_true", help="Print version")
    return CollectorOptions(**vars(parser.parse_args(argv)))


def main(argv=None):
    """Run the collector until SIGINT or SIGTERM; return the exit status."""
    options = parse_args(argv)
    if options.version:
        print(APP_VERSION)
        return 0

    try:
        level = parse_log_level(options.loglevel)
    except LogLevelError:
        logging.getLogger().error("error parsing log level")
        return 1
    configure_logging(level, options.logfmt)

    if options.produce == "sample":
        if options.mapping:
            try:
                with open(options.mapping, encoding="utf-8") as handle:
                    load_mapping(handle)
            except OSError as exc:
                logger.error("error opening mapping", extra={"attrs": {"error": str(exc)}})
                return 1
            except ValueError as exc:
                logger.error("error loading mapping", extra={"attrs": {"error": str(exc)}})
                return 1
    elif options.produce != "raw":
        logger.error("producer does not exist", extra={"attrs": {"producer": options.produce}})
        return 1

    try:
        listeners = parse_listen_addresses(options.listen)
    except ListenAddressError as exc:
        logger.error("error parsing address", extra={"attrs": {"error": str(exc)}})
        return 1

    state = HealthState()
    server = None
    server_thread = None
    if options.addr:
        try:
            server = make_health_server(options.addr, state)
        except (OSError, ValueError) as exc:
            logger.error("HTTP server error", extra={"attrs": {"error": str(exc)}})
            return 1
        server_thread = threading.Thread(target=server.serve_forever, daemon=True)
        server_thread.start()

    logger.info("starting collector")
    for listener in listeners:
        logger.info("starting collection", extra={"attrs": listener.log_attributes()})

    stop = threading.Event()

    def _on_signal(signum, frame):
        stop.set()

    previous = {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        state.set_collecting(True)
        while not stop.wait(0.5):
            pass
    finally:
        state.set_collecting(False)
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        if server is not None:
            server.shutdown()
            server.server_close()
            server_thread.join(timeout=5)
            logger.info("closed HTTP server", extra={"attrs": {"http": options.addr}})
    return 0