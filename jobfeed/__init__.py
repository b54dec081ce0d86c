"""Job posting aggregation: adapters, dedupe, TTL cache and scheduled batch runs."""

__version__ = "0.1.0"
