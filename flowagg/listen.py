"""Listen addresses such as ``sflow://:6343?count=2&workers=4``."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlsplit

DEFAULT_LISTEN_ADDRESSES = "sflow://:6343,netflow://:2055"
DEFAULT_QUEUE_SIZE = 1000000

_UINT = re.compile(r"[0-9]+")
_UINT64_MAX = (1 << 64) - 1
_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ListenAddressError(ValueError):
    """A listen address or one of its options is invalid."""


class Scheme(enum.Enum):
    SFLOW = "sflow"
    NETFLOW = "netflow"
    FLOW = "flow"


@dataclass(frozen=True)
class ListenConfig:
    """Where to listen and how many sockets, workers and queue slots to use."""

    scheme: Scheme
    hostname: str
    port: int
    count: int = 1
    workers: int = 2
    blocking: bool = False
    queue_size: int = DEFAULT_QUEUE_SIZE

    def log_attributes(self):
        """The settings as structured log attributes."""
        return {
            "scheme": self.scheme.value,
            "hostname": self.hostname,
            "port": self.port,
            "count": self.count,
            "workers": self.workers,
            "blocking": self.blocking,
            "queue_size": self.queue_size,
        }


def _parse_uint(text, what):
    if not _UINT.fullmatch(text) or int(text) > _UINT64_MAX:
        raise ListenAddressError(f"error parsing {what} in URL: invalid syntax {text!r}")
    return int(text)


def _parse_bool(text, what):
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ListenAddressError(f"error parsing {what} in URL: invalid syntax {text!r}")


def _split_netloc(netloc):
    host = netloc.rpartition("@")[2]
    if host.startswith("["):
        close = host.find("]")
        if close < 0:
            raise ListenAddressError(f"missing ']' in host {host!r}")
        rest = host[close + 1 :]
        if rest and not rest.startswith(":"):
            raise ListenAddressError(f"invalid port {rest!r} after host")
        return host[1:close], rest[1:]
    if ":" in host:
        hostname, _, port = host.rpartition(":")
        return hostname, port
    return host, ""


def parse_listen_address(address):
    """Parse one listen URL into a ListenConfig."""
    try:
        parts = urlsplit(address)
    except ValueError as exc:
        raise ListenAddressError(f"error parsing address: {exc}") from exc
    query = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True, separator="&"):
        query.setdefault(key, value)

    count = _parse_uint(query["count"], "count of sockets") if "count" in query else 1
    count = count or 1

    workers = _parse_uint(query["workers"], "workers") if "workers" in query else 0
    workers = workers or count * 2

    blocking = _parse_bool(query["blocking"], "blocking") if "blocking" in query else False

    if "queue_size" in query:
        queue_size = _parse_uint(query["queue_size"], "queue_size")
    elif not blocking:
        queue_size = DEFAULT_QUEUE_SIZE
    else:
        queue_size = 0

    hostname, port_text = _split_netloc(parts.netloc)
    if not _UINT.fullmatch(port_text) or int(port_text) > _UINT64_MAX:
        raise ListenAddressError(f"port could not be converted to integer: {port_text!r}")
    port = int(port_text)

    try:
        scheme = Scheme(parts.scheme)
    except ValueError as exc:
        raise ListenAddressError(f"scheme does not exist: {parts.scheme!r}") from exc

    return ListenConfig(
        scheme=scheme,
        hostname=hostname,
        port=port,
        count=count,
        workers=workers,
        blocking=blocking,
        queue_size=queue_size,
    )


def parse_listen_addresses(addresses):
    """Parse a comma separated list of listen URLs."""
    return [parse_listen_address(address) for address in addresses.split(",")]