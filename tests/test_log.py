"""Tests for the centralized logging module."""

from __future__ import annotations

import logging

import pytest

from agentpipe._log import get_logger, setup_logging


@pytest.fixture()
def _caplog_agentpipe(caplog):
    """Attach caplog handler to the ``agentpipe`` logger so records are captured
    even though ``propagate=False``."""
    root = logging.getLogger("agentpipe")
    root.addHandler(caplog.handler)
    yield
    root.removeHandler(caplog.handler)


class TestGetLogger:
    def test_returns_logger(self):
        log = get_logger("pipeline.runner")
        assert isinstance(log, logging.Logger)
        assert log.name == "agentpipe.pipeline.runner"

    def test_child_of_agentpipe(self):
        log = get_logger("child")
        assert log.parent is not None
        assert log.parent.name == "agentpipe"


class TestSetupLogging:
    def test_idempotent(self):
        root = logging.getLogger("agentpipe")
        setup_logging()
        count_before = len(root.handlers)
        setup_logging()
        assert len(root.handlers) == count_before

    def test_propagate_false(self):
        setup_logging()
        assert logging.getLogger("agentpipe").propagate is False

    def test_verbose_lowers_level_later(self):
        root = logging.getLogger("agentpipe")
        previous = root.level
        setup_logging()
        setup_logging(verbose=True)
        try:
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)


class TestLogOutput:
    @pytest.mark.usefixtures("_caplog_agentpipe")
    def test_tag_strips_prefix(self, caplog):
        log = get_logger("executor")
        with caplog.at_level("WARNING", logger="agentpipe.executor"):
            log.warning("step failed")
        assert "[executor] step failed" in caplog.text
        assert "[agentpipe.executor]" not in caplog.text

    @pytest.mark.usefixtures("_caplog_agentpipe")
    def test_debug_suppressed_at_warning_level(self, caplog):
        log = get_logger("quiet")
        with caplog.at_level("WARNING", logger="agentpipe.quiet"):
            log.debug("should not appear")
        assert "should not appear" not in caplog.text

    @pytest.mark.usefixtures("_caplog_agentpipe")
    def test_unrecognized_condition_warns(self, caplog):
        from agentpipe.pipeline._expressions import condition_met
        from tests.conftest import make_context

        with caplog.at_level("WARNING", logger="agentpipe.pipeline.expressions"):
            assert condition_met("sometimes", make_context())
        assert "Unrecognized condition 'sometimes'" in caplog.text
