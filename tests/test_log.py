"""Tests for the program-name log adapter."""

import logging

from cpuwatch.log import ProgramLogger


def test_prefixes_messages(caplog):
    """Test messages are prefixed with the program name."""
    log = ProgramLogger(logging.getLogger("cpuwatch.test"), "cpuwatch")
    with caplog.at_level(logging.ERROR, logger="cpuwatch"):
        log.error("Could not open '%s'", "/nope")

    assert caplog.messages == ["cpuwatch: Could not open '/nope'"]


def test_percent_in_program_name(caplog):
    """Test a program name containing % does not break formatting."""
    log = ProgramLogger(logging.getLogger("cpuwatch.test"), "50%watch")
    with caplog.at_level(logging.ERROR, logger="cpuwatch"):
        log.error("value %s", "x")

    assert caplog.messages == ["50%watch: value x"]
    assert log.prog == "50%watch"
