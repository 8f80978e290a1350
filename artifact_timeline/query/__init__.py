"""
Structured query engine: index prefilter plus bounded document scan.
"""

from .engine import DEFAULT_SCAN_BUFFER, StructuredQueryEngine, prefilter

__all__ = ["DEFAULT_SCAN_BUFFER", "StructuredQueryEngine", "prefilter"]
