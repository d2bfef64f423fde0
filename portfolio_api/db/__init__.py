"""Query execution over the pooled engine."""

from .query_executor import BatchQuery, QueryExecutor, QueryOptions, WriteResult

__all__ = [
    "BatchQuery",
    "QueryExecutor",
    "QueryOptions",
    "WriteResult",
]
