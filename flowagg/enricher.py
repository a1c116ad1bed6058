"""Flow enrichment: ASN and country lookups and length-delimited message framing."""

from __future__ import annotations

import argparse
import ipaddress
from dataclasses import dataclass

MAX_MESSAGE_SIZE = 4 * 1024 * 1024
_MAX_VARINT_BYTES = 10


@dataclass
class FlowMessage:
    """The fields of a flow message that enrichment reads or sets."""

    src_addr: bytes = b""
    dst_addr: bytes = b""
    src_as: int = 0
    dst_as: int = 0
    src_country: str = ""
    dst_country: str = ""
    sampling_rate: int = 0


def _address_from_bytes(address):
    if len(address) == 4:
        return ipaddress.IPv4Address(bytes(address))
    if len(address) == 16:
        parsed = ipaddress.IPv6Address(bytes(address))
        return parsed.ipv4_mapped or parsed
    raise ValueError(f"invalid IP address of {len(address)} bytes")


def _build_table(entries):
    table = [(ipaddress.ip_network(cidr), value) for cidr, value in entries.items()]
    table.sort(key=lambda item: item[0].prefixlen, reverse=True)
    return table


class Lookup:
    """An in-memory IP prefix database mapping networks to an ASN and a country code."""

    def __init__(self, asns=None, countries=None):
        self._asns = _build_table(asns or {})
        self._countries = _build_table(countries or {})

    @staticmethod
    def _find(table, address, missing):
        parsed = _address_from_bytes(address)
        return next((value for network, value in table if parsed in network), missing)

    def asn(self, address):
        """ASN of the longest matching prefix, 0 when none matches."""
        return self._find(self._asns, address, 0)

    def country(self, address):
        """ISO country code of the longest matching prefix, "" when none matches."""
        return self._find(self._countries, address, "")


def map_asn(db, address):
    """Look up an ASN, or return None when the address cannot be looked up."""
    try:
        return int(db.asn(address))
    except ValueError:
        return None


def map_country(db, address):
    """Look up a country code, or return None when the address cannot be looked up."""
    try:
        return db.country(address)
    except ValueError:
        return None


def map_flow(db_asn, db_country, msg):
    """Fill in AS numbers and countries for both ends of the flow."""
    if db_asn is not None:
        src_as = map_asn(db_asn, msg.src_addr)
        if src_as is not None:
            msg.src_as = src_as
        dst_as = map_asn(db_asn, msg.dst_addr)
        if dst_as is not None:
            msg.dst_as = dst_as
    if db_country is not None:
        src_country = map_country(db_country, msg.src_addr)
        if src_country is not None:
            msg.src_country = src_country
        dst_country = map_country(db_country, msg.dst_addr)
        if dst_country is not None:
            msg.dst_country = dst_country
    return msg


def apply_sampling_rate(msg, sampling_rate):
    """Override the sampling rate when a positive one is given."""
    if sampling_rate > 0:
        msg.sampling_rate = sampling_rate
    return msg


def encode_varint(value):
    """Encode an unsigned 64-bit integer as a base-128 varint."""
    if not 0 <= value < 1 << 64:
        raise ValueError("varint must be an unsigned 64-bit integer")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def read_varint(stream):
    """Read a varint; EOFError at a clean end of stream, ValueError if it is cut short."""
    result = 0
    for count in range(_MAX_VARINT_BYTES):
        chunk = stream.read(1)
        if not chunk:
            if count == 0:
                raise EOFError("end of stream")
            raise ValueError("truncated varint")
        byte = chunk[0]
        if count == _MAX_VARINT_BYTES - 1 and byte > 1:
            raise ValueError("varint overflows 64 bits")
        result |= (byte & 0x7F) << (7 * count)
        if not byte & 0x80:
            return result
    raise ValueError("varint overflows 64 bits")


def write_delimited(stream, payload):
    """Write a length-prefixed payload and return the number of bytes written."""
    frame = encode_varint(len(payload)) + bytes(payload)
    stream.write(frame)
    return len(frame)


def read_delimited(stream):
    """Read one length-prefixed payload."""
    size = read_varint(stream)
    if size > MAX_MESSAGE_SIZE:
        raise ValueError(f"message size {size} exceeds limit {MAX_MESSAGE_SIZE}")
    chunks = []
    remaining = size
    while remaining:
        chunk = stream.read(remaining)
        if not chunk:
            raise ValueError("truncated message")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def iter_delimited(stream):
    """Yield length-prefixed payloads until the stream ends."""
    while True:
        try:
            payload = read_delimited(stream)
        except EOFError:
            return
        yield payload


def app_version(version, buildinfos):
    return "Enricher " + version + " " + buildinfos


def parse_args(argv=None):
    """Parse the enricher's command line options."""
    parser = argparse.ArgumentParser(prog="enricher", allow_abbrev=False)
    parser.add_argument("-db.asn", "--db.asn", dest="db_asn", default="", help="IP->ASN database")
    parser.add_argument(
        "-db.country", "--db.country", dest="db_country", default="", help="IP->Country database"
    )
    parser.add_argument("-loglevel", "--loglevel", default="info", help="Log level")
    parser.add_argument("-logfmt", "--logfmt", default="normal", help="Log formatter")
    parser.add_argument(
        "-samplingrate", "--samplingrate", type=int, default=0, help="Set sampling rate (values > 0)"
    )
    parser.add_argument("-format", "--format", default="json", help="Choose the format")
    parser.add_argument("-transport", "--transport", default="file", help="Choose the transport")
    parser.add_argument("-v", "--v", dest="version", action="store_true", help="Print version")
    return parser.parse_args(argv)