"""Factkeeper: durable user facts extracted from conversation."""

__version__ = "0.1.0"
