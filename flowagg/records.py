"""Flow records read from a collector's JSON log, and their aggregates."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _format_time(ns: int) -> str:
    """Format nanoseconds since the epoch as RFC 3339 with nanoseconds, in local time."""
    seconds, nanos = divmod(ns, 1_000_000_000)
    moment = (_EPOCH + timedelta(seconds=seconds)).astimezone()
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if nanos:
        text += "." + f"{nanos:09d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if not offset:
        return text + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    hours, minutes = divmod(abs(total) // 60, 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _encode_json(value: object) -> str:
    """Encode compact JSON, escaping the characters that are unsafe inside HTML."""
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


@dataclass
class NetFlowRecord:
    """One flow as written by the collector's JSON formatter."""

    type: str = ""
    time_received_ns: int = 0
    src_addr: str = ""
    dst_addr: str = ""
    src_port: int = 0
    dst_port: int = 0
    post_nat_src_addr: str = ""
    post_nat_dst_addr: str = ""
    post_src_mac: str = ""
    post_dst_mac: str = ""
    bytes: int = 0
    packets: int = 0
    proto: str = ""
    in_if: int = 0
    out_if: int = 0
    sampling_rate: int = 0
    time_flow_start_ns: int = 0
    time_flow_end_ns: int = 0

    @classmethod
    def from_json(cls, line):
        """Parse one JSON line; unknown keys are ignored, keys match case-insensitively."""
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("flow record must be a JSON object")
        kinds = {f.name: f.type for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = key.lower()
            kind = kinds.get(name)
            if kind is None or value is None:
                continue
            if kind == "str":
                if not isinstance(value, str):
                    raise ValueError(f"field {key!r} must be a string")
            else:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"field {key!r} must be an integer")
                if not _INT64_MIN <= value <= _INT64_MAX:
                    raise ValueError(f"field {key!r} is out of range")
            values[name] = value
        return cls(**values)


@dataclass
class AggregatedRecord:
    """Totals of the flows that share an aggregation key."""

    aggregation_key: str
    src_addr: str
    dst_addr: str
    port: int
    post_src_mac: str
    post_dst_mac: str
    total_bytes: int
    total_packets: int
    flow_count: int
    first_seen_ns: int
    last_seen_ns: int
    proto: str
    direction: str

    def merge(self, record):
        """Add one flow record to the totals and widen the seen-time window."""
        self.total_bytes += record.bytes
        self.total_packets += record.packets
        self.flow_count += 1
        self.first_seen_ns = min(self.first_seen_ns, record.time_received_ns)
        self.last_seen_ns = max(self.last_seen_ns, record.time_received_ns)

    def to_dict(self):
        """Return the record as a dictionary in output field order."""
        return {
            "aggregation_key": self.aggregation_key,
            "src_addr": self.src_addr,
            "dst_addr": self.dst_addr,
            "port": self.port,
            "post_src_mac": self.post_src_mac,
            "post_dst_mac": self.post_dst_mac,
            "total_bytes": self.total_bytes,
            "total_packets": self.total_packets,
            "flow_count": self.flow_count,
            "first_seen_time": _format_time(self.first_seen_ns),
            "last_seen_time": _format_time(self.last_seen_ns),
            "proto": self.proto,
            "direction": self.direction,
        }

    def to_json(self):
        """Return the record as one line of compact JSON, without a newline."""
        return _encode_json(self.to_dict())