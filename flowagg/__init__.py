"""Aggregation of JSON flow logs, flow enrichment helpers and a collector front end."""

__version__ = "0.1.0"