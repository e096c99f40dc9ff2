"""Analytics event sinks."""

from .sink import AnalyticsSink, LoggingAnalyticsSink, SQLiteAnalyticsSink, emit

__all__ = [
    "AnalyticsSink",
    "LoggingAnalyticsSink",
    "SQLiteAnalyticsSink",
    "emit",
]
