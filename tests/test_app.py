"""Tests for the cpuwatch command line entry point."""

import os
import signal

from cpuwatch.app import EXIT_FAILURE, EXIT_USAGE, USAGE, main
from cpuwatch.models import Sample
from cpuwatch.monitor import SOURCES


def test_usage_lists_options_and_examples():
    """Test the usage text documents every option and both examples."""
    for form in ("--help", "--output=PATH", "--cpus=NUM", "--samples=NUM", "--interval=NUM", "--source=NAME", "--verbose"):
        assert form in USAGE
    assert "cpuwatch -o output -i1 -n5 -c4" in USAGE
    assert "cpuwatch -o output -i60 -c12" in USAGE


def test_help_prints_usage(capsys):
    """Test --help prints usage and exits with the usage status."""
    assert main(["cpuwatch", "--help"]) == EXIT_USAGE

    err = capsys.readouterr().err
    assert err == USAGE


def test_help_wins_over_errors(capsys):
    """Test -h suppresses diagnostics for an otherwise broken command line."""
    assert main(["cpuwatch", "--bogus", "--cpus=abc", "-h"]) == EXIT_USAGE

    err = capsys.readouterr().err
    assert "Error(s)" not in err
    assert err == USAGE


def test_invalid_command_line(capsys):
    """Test diagnostics are prefixed with the program name and followed by usage."""
    assert main(["/usr/local/bin/cpuwatch", "--interval=abc"]) == EXIT_USAGE

    err = capsys.readouterr().err
    assert "cpuwatch: Error(s) processing command line arguments." in err
    assert "cpuwatch: --output/-o was not given." in err
    assert "cpuwatch: --cpus/-c was not given." in err
    assert "cpuwatch: --interval/-i was given improperly 1 time: 'abc'." in err
    assert err.endswith(USAGE)


def test_runtime_error_exit_status(tmp_path, monkeypatch, capsys):
    """Test an unwritable output file is fatal with a distinct status."""
    monkeypatch.setitem(SOURCES, "proc", lambda: Sample(uptime=10.0, idle=5.0))
    output = tmp_path / "missing" / "cpu"

    assert main(["cpuwatch", "-o", str(output), "-c1"]) == EXIT_FAILURE

    err = capsys.readouterr().err
    assert f"cpuwatch: Could not open '{output}'" in err
    assert USAGE not in err


def test_sigterm_stops_gracefully(tmp_path, monkeypatch, capsys):
    """Test SIGTERM ends the loop after the current tick and restores handlers."""
    readings = iter([Sample(10.0, 5.0), Sample(11.0, 5.0)])

    def source():
        sample = next(readings)
        if sample.uptime == 11.0:
            os.kill(os.getpid(), signal.SIGTERM)
        return sample

    monkeypatch.setitem(SOURCES, "proc", source)
    previous = signal.getsignal(signal.SIGTERM)
    output = tmp_path / "cpu"

    assert main(["cpuwatch", "-o", str(output), "-c1", "-i0.001", "-v"]) == 0

    assert output.read_text() == "100.0%"
    assert signal.getsignal(signal.SIGTERM) == previous
    err = capsys.readouterr().err
    assert "cpuwatch: utilization 50.0%" in err
    assert "cpuwatch: utilization 100.0%" in err
