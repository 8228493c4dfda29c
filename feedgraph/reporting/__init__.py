"""Reporting utilities for feedgraph."""

from .artifacts import write_manifest
from .metrics import CsvSink, JsonlSink, MemorySink, emit

__all__ = ["CsvSink", "JsonlSink", "MemorySink", "emit", "write_manifest"]
