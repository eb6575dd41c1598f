"""Output sinks for ledger events and exports."""

from welfare_loans.sinks.json_file import JsonFileSink
from welfare_loans.sinks.kafka import KafkaSink

__all__ = ["JsonFileSink", "KafkaSink"]
