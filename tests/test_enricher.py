import io

import pytest

from flowagg.enricher import (
    MAX_MESSAGE_SIZE,
    FlowMessage,
    Lookup,
    app_version,
    apply_sampling_rate,
    encode_varint,
    iter_delimited,
    map_asn,
    map_country,
    map_flow,
    parse_args,
    read_delimited,
    read_varint,
    write_delimited,
)

GOOGLE = bytes([8, 8, 8, 8])
MAPPED_GOOGLE = bytes(10) + b"\xff\xff" + GOOGLE


@pytest.fixture
def lookup():
    return Lookup(
        asns={"8.0.0.0/8": 1, "8.8.8.0/24": 15169, "2001:db8::/32": 64500},
        countries={"8.8.8.0/24": "US"},
    )


def test_varint_wire_bytes():
    assert encode_varint(0) == b"\x00"
    assert encode_varint(300) == b"\xac\x02"


@pytest.mark.parametrize("value", [0, 1, 127, 128, 16383, 16384, 2**32, 2**64 - 1])
def test_varint_round_trip(value):
    assert read_varint(io.BytesIO(encode_varint(value))) == value


@pytest.mark.parametrize("value", [-1, 2**64])
def test_varint_out_of_range(value):
    with pytest.raises(ValueError):
        encode_varint(value)


def test_read_varint_errors():
    with pytest.raises(EOFError):
        read_varint(io.BytesIO(b""))
    with pytest.raises(ValueError):
        read_varint(io.BytesIO(b"\x80"))
    with pytest.raises(ValueError):
        read_varint(io.BytesIO(b"\xff" * 10 + b"\x01"))


def test_delimited_round_trip():
    stream = io.BytesIO()
    payloads = [b"first", b"", b"x" * 500]
    written = sum(write_delimited(stream, payload) for payload in payloads)
    assert written == len(stream.getvalue())
    stream.seek(0)
    assert list(iter_delimited(stream)) == payloads


def test_read_delimited_truncated_and_oversized():
    with pytest.raises(ValueError):
        read_delimited(io.BytesIO(encode_varint(10) + b"abc"))
    with pytest.raises(ValueError):
        read_delimited(io.BytesIO(encode_varint(MAX_MESSAGE_SIZE + 1)))
    with pytest.raises(EOFError):
        read_delimited(io.BytesIO())


def test_lookup_longest_prefix(lookup):
    assert lookup.asn(GOOGLE) == 15169
    assert lookup.asn(bytes([8, 1, 1, 1])) == 1
    assert lookup.asn(MAPPED_GOOGLE) == 15169
    assert lookup.asn(bytes([9, 9, 9, 9])) == 0
    assert lookup.country(GOOGLE) == "US"
    assert lookup.country(bytes([8, 1, 1, 1])) == ""


def test_lookup_rejects_bad_length(lookup):
    with pytest.raises(ValueError):
        lookup.asn(b"\x01\x02")


def test_map_helpers_return_none_on_error(lookup):
    assert map_asn(lookup, b"") is None
    assert map_country(lookup, b"\x01") is None
    assert map_asn(lookup, GOOGLE) == 15169


def test_map_flow_fills_both_ends(lookup):
    msg = FlowMessage(src_addr=GOOGLE, dst_addr=bytes([9, 9, 9, 9]), dst_as=7, dst_country="FR")
    map_flow(lookup, lookup, msg)
    assert (msg.src_as, msg.src_country) == (15169, "US")
    assert (msg.dst_as, msg.dst_country) == (0, "")


def test_map_flow_keeps_values_on_error_or_without_db(lookup):
    msg = FlowMessage(src_addr=b"", dst_addr=GOOGLE, src_as=5, src_country="DE")
    map_flow(lookup, None, msg)
    assert msg.src_as == 5
    assert msg.dst_as == 15169
    assert msg.src_country == "DE"
    assert msg.dst_country == ""


def test_apply_sampling_rate():
    msg = FlowMessage(sampling_rate=100)
    assert apply_sampling_rate(msg, 0).sampling_rate == 100
    assert apply_sampling_rate(msg, -5).sampling_rate == 100
    assert apply_sampling_rate(msg, 2048).sampling_rate == 2048


def test_app_version():
    assert app_version("v1", "(today)") == "Enricher " + "v1" + " " + "(today)"


def test_parse_args_defaults_and_values():
    args = parse_args([])
    assert (args.format, args.transport, args.loglevel, args.logfmt) == ("json", "file", "info", "normal")
    assert args.samplingrate == 0
    assert args.version is False
    args = parse_args(["-db.asn", "asn.mmdb", "-samplingrate", "10", "-v"])
    assert args.db_asn == "asn.mmdb"
    assert args.samplingrate == 10
    assert args.version is True