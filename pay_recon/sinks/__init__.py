"""Output sinks for reconciliation events."""

from pay_recon.sinks.console import ConsoleSink
from pay_recon.sinks.json_file import JsonFileSink
from pay_recon.sinks.kafka import KafkaSink
from pay_recon.sinks.memory import MemorySink

__all__ = ["ConsoleSink", "JsonFileSink", "KafkaSink", "MemorySink"]
