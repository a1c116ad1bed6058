"""Periodic aggregation of flow records from a JSON log."""

from __future__ import annotations

import enum
import ipaddress
import logging
import os
import threading
import time
from dataclasses import dataclass

from flowagg.records import AggregatedRecord, NetFlowRecord

logger = logging.getLogger(__name__)

_PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "fc00::/7")
)


@dataclass
class Config:
    """Where to read, where to write, and how often (in seconds)."""

    input_log_file: str = "/var/log/flow.log"
    output_log_file: str = "/var/log/aggregated_flow.log"
    aggregation_period: float = 5 * 60.0


class Direction(enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    UNKNOWN = "unknown"


def _parse_ip(text):
    if "%" in text:
        return None
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


class Aggregator:
    """Reads new flow records, groups them, and appends the groups to a log."""

    def __init__(self, config):
        self.config = config
        self.aggregated_flows: dict[str, AggregatedRecord] = {}
        self.last_processed_pos = 0
        self.private_networks = _PRIVATE_NETWORKS
        self._lock = threading.Lock()

    def is_private_ip(self, address):
        """Tell whether the address lies in an RFC 1918 or IPv6 ULA range."""
        parsed = _parse_ip(address)
        if parsed is None:
            return False
        return any(parsed in network for network in self.private_networks)

    def effective_dst_addr(self, record):
        """The post-NAT destination when set, else the plain destination."""
        if record.post_nat_dst_addr not in ("", "0.0.0.0"):
            return record.post_nat_dst_addr
        return record.dst_addr

    def determine_port(self, record):
        """Return (port, direction); direction is None when both ends are private."""
        src_private = self.is_private_ip(record.src_addr)
        dst_private = self.is_private_ip(self.effective_dst_addr(record))
        if src_private and dst_private:
            return 0, None
        if src_private:
            return record.dst_port, Direction.OUTBOUND
        if dst_private:
            return record.src_port, Direction.INBOUND
        return record.dst_port, Direction.UNKNOWN

    def aggregation_key(self, record, port):
        return "|".join(
            (
                record.src_addr,
                self.effective_dst_addr(record),
                str(port),
                record.post_src_mac,
                record.post_dst_mac,
            )
        )

    def process_record(self, record):
        """Fold one record into its group; private-to-private traffic is dropped."""
        port, direction = self.determine_port(record)
        if direction is None:
            return
        key = self.aggregation_key(record, port)
        with self._lock:
            existing = self.aggregated_flows.get(key)
            if existing is not None:
                existing.merge(record)
                return
            self.aggregated_flows[key] = AggregatedRecord(
                aggregation_key=key,
                src_addr=record.src_addr,
                dst_addr=self.effective_dst_addr(record),
                port=port,
                post_src_mac=record.post_src_mac,
                post_dst_mac=record.post_dst_mac,
                total_bytes=record.bytes,
                total_packets=record.packets,
                flow_count=1,
                first_seen_ns=record.time_received_ns,
                last_seen_ns=record.time_received_ns,
                proto=record.proto,
                direction=direction.value,
            )

    def process_log_file(self):
        """Read the input log from where the last call stopped."""
        with open(self.config.input_log_file, "rb") as handle:
            handle.seek(self.last_processed_pos)
            for raw in handle:
                line = raw.rstrip(b"\n")
                if line.endswith(b"\r"):
                    line = line[:-1]
                text = line.decode("utf-8", errors="replace")
                if not text.strip():
                    continue
                try:
                    record = NetFlowRecord.from_json(text)
                except ValueError as exc:
                    logger.warning("Error parsing JSON: %s, line: %s", exc, text)
                    continue
                self.process_record(record)
            self.last_processed_pos = handle.tell()

    def write_aggregated_data(self):
        """Append every group to the output log, clear them, and return how many were written."""
        with self._lock:
            if not self.aggregated_flows:
                return 0
            path = self.config.output_log_file
            os.makedirs(os.path.dirname(path) or ".", mode=0o755, exist_ok=True)
            with open(path, "a", encoding="utf-8") as out:
                for record in self.aggregated_flows.values():
                    out.write(record.to_json() + "\n")
            count = len(self.aggregated_flows)
            self.aggregated_flows = {}
            return count

    def _tick(self):
        try:
            self.process_log_file()
        except (OSError, ValueError) as exc:
            logger.error("Error processing log file: %s", exc)
        try:
            self.write_aggregated_data()
        except OSError as exc:
            logger.error("Error writing aggregated data: %s", exc)

    def run(self, stop=None):
        """Process and flush once per period until ``stop`` is set."""
        period = self.config.aggregation_period
        if period <= 0:
            raise ValueError("aggregation period must be positive")
        if stop is None:
            stop = threading.Event()
        logger.info(
            "Starting NetFlow aggregator. Input: %s, Output: %s, Period: %ss",
            self.config.input_log_file,
            self.config.output_log_file,
            period,
        )
        deadline = time.monotonic() + period
        while not stop.wait(max(0.0, deadline - time.monotonic())):
            deadline += period
            self._tick()