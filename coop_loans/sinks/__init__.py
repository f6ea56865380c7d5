"""Output sinks for audit events."""

from coop_loans.sinks.console import ConsoleSink
from coop_loans.sinks.json_file import JsonFileSink
from coop_loans.sinks.kafka import KafkaSink

__all__ = ["ConsoleSink", "JsonFileSink", "KafkaSink"]
