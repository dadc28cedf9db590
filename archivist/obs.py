"""Observability utilities providing OpenTelemetry spans.

A tracer provider is installed once on first use. Spans are exported to the console only
when settings.OTEL_CONSOLE_EXPORT is enabled, so users can plug in a different exporter
externally (e.g. OTLP via the standard OTEL_* environment variables).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from archivist.config import settings

_otel_inited: bool = False


def _init_otel() -> None:
    """Initialize a basic OpenTelemetry tracer provider.

    Sets a global tracer provider once; adds console export when configured.
    """
    global _otel_inited
    if _otel_inited:
        return
    tp = TracerProvider()
    if settings.OTEL_CONSOLE_EXPORT:
        tp.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tp)
    _otel_inited = True


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[trace.Span]:
    """
    Lightweight context manager for an OpenTelemetry span.
    Exceptions raised inside the block are recorded on the span and re-raised.
    """
    _init_otel()
    tracer = trace.get_tracer("archivist")
    with tracer.start_as_current_span(name, attributes=attributes or {}) as otel_span:
        yield otel_span
