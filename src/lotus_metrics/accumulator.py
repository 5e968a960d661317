"""Metric sinks.

An accumulator takes (measurement, fields, tags) triples, the same shape a
Telegraf input hands to its accumulator. `LineProtocolAccumulator` renders
them as InfluxDB line protocol so the output can be fed to Telegraf's
`exec`/`execd` inputs or written straight to InfluxDB.
"""
from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, TextIO

from .types import FieldValue, MetricRecord


class Accumulator(ABC):
    """Receives metric records. Adding a record never fails."""

    @abstractmethod
    def add_fields(self, measurement: str, fields: Mapping[str, FieldValue],
                   tags: Optional[Mapping[str, str]] = None) -> None:
        raise NotImplementedError

    def add_record(self, record: MetricRecord) -> None:
        self.add_fields(record.measurement, record.fields, record.tags)


class ListAccumulator(Accumulator):
    """Keeps records in memory."""

    def __init__(self):
        self.records: List[MetricRecord] = []

    def add_fields(self, measurement, fields, tags=None) -> None:
        self.records.append(MetricRecord(measurement, dict(fields), dict(tags or {})))

    def by_measurement(self, measurement: str) -> List[MetricRecord]:
        return [r for r in self.records if r.measurement == measurement]


class LineProtocolAccumulator(Accumulator):
    """Writes one line-protocol line per record to `stream`.

    All records of a cycle share the timestamp given at construction (or the
    time the accumulator was created), in nanoseconds.
    """

    def __init__(self, stream: TextIO, timestamp_ns: Optional[int] = None):
        self.stream = stream
        self.timestamp_ns = time.time_ns() if timestamp_ns is None else timestamp_ns
        self.lines = 0

    def add_fields(self, measurement, fields, tags=None) -> None:
        line = encode_line(measurement, fields, tags, self.timestamp_ns)
        if line is None:
            return
        self.stream.write(line + "\n")
        self.lines += 1


def _escape_key(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _escape_measurement(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _format_field(value: FieldValue) -> Optional[str]:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def encode_line(measurement: str, fields: Mapping[str, FieldValue],
                tags: Optional[Mapping[str, str]] = None,
                timestamp_ns: Optional[int] = None) -> Optional[str]:
    """Encode one point; returns None when no field is representable."""
    parts: Dict[str, str] = {}
    for key in sorted(fields):
        formatted = _format_field(fields[key])
        if formatted is not None:
            parts[_escape_key(key)] = formatted
    if not parts:
        return None

    head = _escape_measurement(measurement)
    for key in sorted(tags or {}):
        value = tags[key]
        # empty tag values are not allowed in line protocol
        if value == "":
            continue
        head += f",{_escape_key(key)}={_escape_key(value)}"

    line = head + " " + ",".join(f"{k}={v}" for k, v in parts.items())
    if timestamp_ns is not None:
        line += f" {timestamp_ns}"
    return line
