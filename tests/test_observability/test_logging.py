"""
Tests for the logging setup.
"""

import logging

import structlog

from legacy_import.observability.logging import (
    _processor_chain,
    bind_context,
    clear_context,
    setup_logging,
)


class TestProcessorChain:

    def test_lines_are_tagged_with_component(self):
        event = {"event": "job_started"}
        for processor in _processor_chain("worker")[:2]:
            event = processor(None, "info", event)
        assert event["component"] == "worker"

    def test_explicit_component_is_kept(self):
        event = {"event": "x", "component": "api"}
        for processor in _processor_chain("worker")[:2]:
            event = processor(None, "info", event)
        assert event["component"] == "api"


class TestContext:

    def teardown_method(self):
        clear_context()

    def test_bind_skips_none_and_stringifies(self):
        bind_context(session_id=42, user_id=None)
        assert structlog.contextvars.get_contextvars() == {"session_id": "42"}

    def test_clear_context(self):
        bind_context(job_id="abc")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


def test_setup_holds_library_levels():
    setup_logging("api")
    assert logging.getLogger("uvicorn.access").level == logging.WARNING
    assert logging.getLogger("kombu").level == logging.WARNING
