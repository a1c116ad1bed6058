# flowagg

Tools for working with network flow records:

- an aggregator that rolls up a JSON flow log per peer and port,
- helpers for enriching flow messages with AS numbers, country codes and a
  sampling rate, and for length-delimited message framing,
- a collector front end that validates its listen addresses and options,
  serves a health check and runs until it is signalled.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Aggregating flow logs

`flowagg-aggregate` reads a log of JSON flow records (one object per line),
groups them, and once per period appends the groups to an output log.

```
flowagg-aggregate --input /var/log/flow.log --output /var/log/aggregated_flow.log --period 5
```

- `--input` / `-input` – flow log to read (default `/var/log/flow.log`)
- `--output` / `-output` – file the aggregated records are appended to
  (default `/var/log/aggregated_flow.log`; its directory is created if needed)
- `--period` / `-period` – aggregation period in whole minutes (default `5`,
  must be positive)

The command runs until interrupted. Each period it reads only the lines added
to the input since the previous pass, then writes and clears the groups
collected so far. Blank lines are skipped; lines that are not valid JSON
objects, or whose fields have the wrong type, are logged and skipped. Field
names in the input match case-insensitively and unknown fields are ignored.

Records are grouped by source address, effective destination address
(`post_nat_dst_addr` when set and not `0.0.0.0`, otherwise `dst_addr`), port,
and the post-NAT source and destination MAC addresses. The port and direction
depend on which side is private (10.0.0.0/8, 172.16.0.0/12, 192.168.0.0/16,
fc00::/7; IPv4-mapped IPv6 addresses count as their IPv4 address):

| source  | destination | port used      | direction  |
|---------|-------------|----------------|------------|
| private | public      | `dst_port`     | `outbound` |
| public  | private     | `src_port`     | `inbound`  |
| public  | public      | `dst_port`     | `unknown`  |
| private | private     | record skipped |            |

Each output line is a compact JSON object with `aggregation_key`, `src_addr`,
`dst_addr`, `port`, `post_src_mac`, `post_dst_mac`, `total_bytes`,
`total_packets`, `flow_count`, `first_seen_time`, `last_seen_time`, `proto`
and `direction`. The key is the five grouping fields joined with `|`; the
times are RFC 3339 timestamps in local time, with nanoseconds where present.

The same logic is available from Python:

```python
from flowagg.aggregator import Aggregator, Config

aggregator = Aggregator(Config(input_log_file="flow.log", output_log_file="out/agg.log"))
aggregator.process_log_file()
written = aggregator.write_aggregated_data()  # number of groups appended
```

`Aggregator.run(stop)` repeats both steps once per `Config.aggregation_period`
(seconds) until the `threading.Event` it is given is set. `flowagg.records`
holds `NetFlowRecord` (with `from_json`) and `AggregatedRecord` (with
`merge`, `to_dict` and `to_json`).

## Enrichment helpers

`flowagg.enricher` provides:

- `FlowMessage` – source and destination addresses (as 4- or 16-byte
  values), AS numbers, country codes and sampling rate;
- `Lookup` – an in-memory prefix table built from dictionaries of CIDR to
  ASN and CIDR to country code, answering with the longest matching prefix;
- `map_flow(db_asn, db_country, msg)` – fills in both ends' AS numbers and
  countries, leaving a field unchanged when its address cannot be looked up;
- `apply_sampling_rate(msg, rate)` – overrides the rate when it is positive;
- `encode_varint`, `read_varint`, `write_delimited`, `read_delimited` and
  `iter_delimited` – varint length-prefixed framing, with messages limited to
  `MAX_MESSAGE_SIZE` (4 MiB);
- `parse_args` and `app_version` for an enricher's command line.

## Collector

`flowagg-collector` parses its options, sets up logging, optionally loads a
YAML mapping file, validates its listen addresses, starts a health endpoint
and then runs until SIGINT or SIGTERM.

```
flowagg-collector --listen "sflow://:6343,netflow://:2055" --addr :8080
```

Options (each also accepted with a single dash):

- `--listen` – comma separated listen URLs (default
  `sflow://:6343,netflow://:2055`); the scheme must be `sflow`, `netflow` or
  `flow`, and the query options `count`, `workers`, `blocking` and
  `queue_size` are accepted (see `flowagg.listen.parse_listen_address`)
- `--loglevel` – `debug`, `info`, `warn` or `error`, optionally with an
  offset such as `warn+2` (default `info`)
- `--logfmt` – `normal` for key=value text, `json` for JSON lines
- `--produce` – `sample` or `raw`; anything else is an error
- `--mapping` – YAML file that must hold a mapping; read with `--produce sample`
- `--addr` – address of the health server (default `:8080`; empty disables it)
- `--format`, `--transport`, `--err.cnt`, `--err.int`, `--templates.path` –
  accepted and parsed (`--err.int` takes durations such as `10s` or `1m30s`)
- `--v` / `-v` – print the version and exit

The health server answers `GET /__health` with `200 OK` while collecting and
`503 Not OK` otherwise; every other path is `404`.

## What this package does not do

- The collector does not open UDP sockets or receive, decode, format or
  forward any flow packets. Listen addresses are only validated and logged,
  the mapping file is only checked, and the format, transport, error-muting
  and template options have no effect.
- There is no metrics endpoint.
- The enrichment helpers have no command of their own and do not read GeoIP
  database files; lookups come from the in-memory `Lookup` table. Flow
  messages are plain dataclasses; no message serialisation format is provided
  beyond length-delimited framing of byte payloads.