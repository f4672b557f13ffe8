"""Data models for cpuwatch."""

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Configuration:
    """Validated command line configuration."""

    output: str
    cpus: int
    interval: float = 1.0  # Seconds between samples
    samples: int = 1  # Width of the moving average
    source: str = "proc"
    verbose: bool = False


@dataclass(slots=True, frozen=True)
class Sample:
    """Cumulative counters read from the system at one instant."""

    uptime: float  # Seconds since boot
    idle: float  # Idle CPU-seconds summed over all cores
