"""
Zone aggregates backend.

Computes derived statistics for consumer-facing zones from geo-level values
published at finer granularities, caching results by a content hash of their
parameters.
"""

__version__ = "1.0.0"
