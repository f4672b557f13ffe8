"""Sampling engine for cpuwatch."""

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator

import psutil

from cpuwatch.log import ProgramLogger
from cpuwatch.models import Configuration, Sample

logger = logging.getLogger(__name__)

PROC_UPTIME = "/proc/uptime"


class MonitorError(Exception):
    """Fatal error raised while sampling or reporting."""


class CounterReadError(MonitorError):
    """The system counters could not be read."""


class OutputWriteError(MonitorError):
    """The output file could not be written."""


def read_proc_uptime(path: str = PROC_UPTIME) -> Sample:
    """
    Read uptime and summed idle time from /proc/uptime.

    The file is opened and closed on every call so that no descriptor
    is held between samples.

    Raises:
        CounterReadError: If the file cannot be opened or parsed.
    """
    try:
        with open(path, encoding="ascii") as f:
            fields = f.read().split()
    except OSError as e:
        raise CounterReadError(f"Could not open {path} ({e.strerror or e})") from e
    except UnicodeDecodeError as e:
        raise CounterReadError(f"Error scanning {path}") from e

    try:
        uptime, idle = (float(field) for field in fields[:2])
    except ValueError as e:
        raise CounterReadError(f"Error scanning {path}") from e

    return Sample(uptime=uptime, idle=idle)


def read_psutil_counters() -> Sample:
    """Read uptime and summed idle time through psutil."""
    try:
        uptime = time.time() - psutil.boot_time()
        # System-wide times are the sum over all CPUs
        idle = psutil.cpu_times().idle
    except (OSError, psutil.Error) as e:
        raise CounterReadError(f"Could not read CPU times ({e})") from e

    return Sample(uptime=uptime, idle=idle)


SOURCES: dict[str, Callable[[], Sample]] = {
    "proc": read_proc_uptime,
    "psutil": read_psutil_counters,
}


def divide(numerator: float, denominator: float) -> float:
    """Float division with IEEE 754 results for a zero denominator."""
    try:
        return numerator / denominator
    except ZeroDivisionError:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)


def utilization(idle: float, uptime: float, cpus: int) -> float:
    """
    Percentage of time the CPUs were busy.

    The result is not clamped, inconsistent counters can push it
    outside 0-100. A zero uptime gives inf or nan, which is written
    like any other value.
    """
    return 100 - 100 * divide(idle / cpus, uptime)


def format_utilization(value: float) -> str:
    """Format a utilization value as written to the output file."""
    return f"{value:.1f}%"


def write_utilization(value: float, path: str) -> None:
    """
    Replace the contents of ``path`` with the formatted utilization.

    Raises:
        OutputWriteError: If the file cannot be opened or written.
    """
    try:
        with open(path, "w", encoding="ascii") as f:
            f.write(format_utilization(value))
    except OSError as e:
        raise OutputWriteError(f"Could not open '{path}' ({e.strerror or e})") from e


class SampleWindow:
    """Oldest-first window of ``size + 1`` samples for delta calculations."""

    def __init__(self, size: int) -> None:
        self._samples: deque[Sample] = deque(maxlen=size + 1)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    @property
    def capacity(self) -> int:
        """Number of samples the window holds once filled."""
        return self._samples.maxlen

    @property
    def oldest(self) -> Sample:
        return self._samples[0]

    @property
    def newest(self) -> Sample:
        return self._samples[-1]

    def fill(self, sample: Sample) -> None:
        """Replace every slot with ``sample``."""
        self._samples.clear()
        self._samples.extend([sample] * self.capacity)

    def push(self, sample: Sample) -> None:
        """Append ``sample``, evicting the oldest one."""
        self._samples.append(sample)


class UtilizationMonitor:
    """
    Periodically sample the CPU counters and write the utilization to a file.

    The first value is computed from a single sample. Every following value
    is the delta between the newest sample and the one ``samples`` ticks
    before it, giving a moving average over the window.
    """

    def __init__(
        self,
        config: Configuration,
        prog: str = "cpuwatch",
        read_counters: Callable[[], Sample] | None = None,
    ) -> None:
        """
        Initialize the UtilizationMonitor.

        Args:
            config: Validated configuration.
            prog: Program name used to prefix log messages.
            read_counters: Counter source. Defaults to the one named by
                ``config.source``.
        """
        self._config = config
        self._read_counters = read_counters or SOURCES[config.source]
        self._log = ProgramLogger(logger, prog)
        self._stop_event = threading.Event()
        self._window = SampleWindow(config.samples)
        self._utilization: float | None = None

    @property
    def config(self) -> Configuration:
        return self._config

    @property
    def window(self) -> SampleWindow:
        return self._window

    @property
    def utilization(self) -> float | None:
        """Most recently computed utilization, None before the first sample."""
        return self._utilization

    def stop(self) -> None:
        """Ask the loop to return after the current wait."""
        self._stop_event.set()

    def run(self, ticks: int | None = None) -> None:
        """
        Sample and report until stopped.

        Args:
            ticks: Number of samples to take after the first one, or None to
                run until stop() is called.

        Raises:
            MonitorError: On the first failure to read counters or write
                the output. Nothing is retried.
        """
        sample = self._read_counters()
        self._utilization = utilization(sample.idle, sample.uptime, self._config.cpus)
        self._window.fill(sample)
        self._log.info(
            "writing to %s every %gs, averaged over %d sample(s)",
            self._config.output,
            self._config.interval,
            self._config.samples,
        )

        taken = 0
        while True:
            write_utilization(self._utilization, self._config.output)
            self._log.debug("utilization %s", format_utilization(self._utilization))

            if ticks is not None and taken >= ticks:
                return
            if self._stop_event.wait(timeout=self._config.interval):
                self._log.info("stopped")
                return

            self._window.push(self._read_counters())
            oldest, newest = self._window.oldest, self._window.newest
            self._utilization = utilization(
                newest.idle - oldest.idle,
                newest.uptime - oldest.uptime,
                self._config.cpus,
            )
            taken += 1
