"""Webhook ingestion gateway that turns source-control notifications into build triggers."""

__version__ = "0.1.0"
