"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from edaoogle.observability.context import get_trace_context, set_trace_context, trace_context
from edaoogle.observability.logging import JsonFormatter, configure_logging
from edaoogle.observability.metrics import (
    DOCUMENTS_INDEXED,
    DOCUMENTS_SKIPPED,
    INDEX_DOC_COUNT,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    get_metrics,
    get_metrics_content_type,
)
from edaoogle.observability.tracing import TraceContextMiddleware, create_span, get_tracer, init_tracing


__all__ = [
    "DOCUMENTS_INDEXED",
    "DOCUMENTS_SKIPPED",
    "INDEX_DOC_COUNT",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "TraceContextMiddleware",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
]
