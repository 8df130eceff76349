"""Unit test environment helpers."""

import pytest


@pytest.fixture(autouse=True)
def _quiet_tracing(monkeypatch):
    """Keep DAL tracing off unless a test turns it on."""
    monkeypatch.delenv("DAL_TRACE_QUERIES", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    yield
