"""Unit tests for configure_logging."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from ekamdash.logging_utils import configure_logging


class TestConfigureLogging:
    def test_installs_one_rich_handler(self):
        logger = configure_logging("debug")
        configure_logging("debug")
        assert logger is logging.getLogger("ekamdash")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
        assert logger.propagate is False
        assert logger.level == logging.DEBUG

    def test_numeric_level(self):
        assert configure_logging(logging.WARNING).level == logging.WARNING

    def test_unknown_level_name_falls_back_to_info(self):
        assert configure_logging("chatty").level == logging.INFO

    def test_docstring_uses_numpy_sections(self):
        doc = configure_logging.__doc__
        assert "Parameters\n    ----------" in doc
        assert "Returns\n    -------" in doc
        assert "Args:" not in doc
