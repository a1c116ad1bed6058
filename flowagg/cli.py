"""Command line entry point of the flow aggregator."""

from __future__ import annotations

import argparse
import logging
import threading

from flowagg.aggregator import Aggregator, Config


def parse_args(argv=None):
    """Build a Config from command line arguments."""
    defaults = Config()
    parser = argparse.ArgumentParser(
        prog="flowagg", description="Aggregate flow records from a JSON log.", allow_abbrev=False
    )
    parser.add_argument("-input", "--input", default=defaults.input_log_file, help="Input NetFlow log file")
    parser.add_argument(
        "-output", "--output", default=defaults.output_log_file, help="Output aggregated log file"
    )
    parser.add_argument("-period", "--period", type=int, default=5, help="Aggregation period in minutes")
    args = parser.parse_args(argv)
    if args.period <= 0:
        parser.error("period must be a positive number of minutes")
    return Config(
        input_log_file=args.input,
        output_log_file=args.output,
        aggregation_period=args.period * 60.0,
    )


def main(argv=None):
    config = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    try:
        Aggregator(config).run(threading.Event())
    except KeyboardInterrupt:
        pass
    return 0