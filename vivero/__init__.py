"""Vivero: zone sensor ingest and irrigation valve control."""

__version__ = "1.0.0"
