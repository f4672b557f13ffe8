"""
Command line validation for cpuwatch.

Options are scanned the way GNU getopt_long scans them (clustered short
options, attached or separate values, unique long-option prefixes), but
scanning never stops at a bad option. Every problem is collected and
reported at once.
"""

import logging
import re
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field

from cpuwatch.log import ProgramLogger
from cpuwatch.models import Configuration
from cpuwatch.monitor import SOURCES

logger = logging.getLogger(__name__)

DECIMAL = re.compile(r"[0-9]+(\.[0-9]+)?")
INTEGER = re.compile(r"[0-9]+")

# Each sample holds a slot in the window
MAX_SAMPLES = 1_000_000


@dataclass(slots=True, frozen=True)
class Option:
    """A recognised command line option."""

    name: str
    short: str
    takes_value: bool

    @property
    def label(self) -> str:
        return f"--{self.name}/-{self.short}"


OUTPUT = Option("output", "o", True)
INTERVAL = Option("interval", "i", True)
CPUS = Option("cpus", "c", True)
SAMPLES = Option("samples", "n", True)
SOURCE = Option("source", "s", True)
VERBOSE = Option("verbose", "v", False)
HELP = Option("help", "h", False)

OPTIONS = (OUTPUT, INTERVAL, CPUS, SAMPLES, SOURCE, VERBOSE, HELP)
SHORT_OPTIONS = {option.short: option for option in OPTIONS}


class UsageError(Exception):
    """The command line cannot be run; usage should be shown."""


class HelpRequested(UsageError):
    """--help/-h was given."""


class InvalidCommandLine(UsageError):
    """One or more problems were found in the command line."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


@dataclass(slots=True)
class ScanResult:
    """Raw outcome of scanning the arguments, before validation."""

    values: dict[str, list[str]] = field(default_factory=dict)
    flags: dict[str, int] = field(default_factory=dict)
    unrecognized: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    positional: list[str] = field(default_factory=list)
    help: bool = False

    def record(self, option: Option, value: str | None = None) -> None:
        if option is HELP:
            self.help = True
        elif option.takes_value:
            self.values.setdefault(option.name, []).append(value)
        else:
            self.flags[option.name] = self.flags.get(option.name, 0) + 1

    def given(self, option: Option) -> list[str]:
        return self.values.get(option.name, [])


def match_long(name: str) -> Option | None:
    """Resolve a long option name or unique prefix, None if unknown or ambiguous."""
    for option in OPTIONS:
        if option.name == name:
            return option
    candidates = [option for option in OPTIONS if option.name.startswith(name)]
    return candidates[0] if len(candidates) == 1 else None


def scan(args: Sequence[str]) -> ScanResult:
    """
    Split ``args`` into options, values and problems.

    Scanning stops early only when help is requested.
    """
    result = ScanResult()
    index = 0
    while index < len(args) and not result.help:
        token = args[index]
        index += 1
        if token == "--":
            result.positional.extend(args[index:])
            break
        if token.startswith("--"):
            index = _scan_long(token, args, index, result)
        elif token.startswith("-") and token != "-":
            index = _scan_short(token, args, index, result)
        else:
            result.positional.append(token)
    return result


def _scan_long(token: str, args: Sequence[str], index: int, result: ScanResult) -> int:
    name, sep, value = token[2:].partition("=")
    option = match_long(name)
    if option is None:
        result.unrecognized.append(token)
    elif not option.takes_value:
        if sep:
            result.unrecognized.append(token)
        else:
            result.record(option)
    elif sep:
        result.record(option, value)
    elif index < len(args):
        result.record(option, args[index])
        index += 1
    else:
        result.missing.append(token)
    return index


def _scan_short(token: str, args: Sequence[str], index: int, result: ScanResult) -> int:
    for position in range(1, len(token)):
        option = SHORT_OPTIONS.get(token[position])
        if option is None:
            result.unrecognized.append(f"-{token[position]}")
            continue
        if not option.takes_value:
            result.record(option)
            if result.help:
                break
            continue

        # The rest of the token is the value, or else the next argument
        value = token[position + 1:]
        if value:
            result.record(option, value)
        elif index < len(args):
            result.record(option, args[index])
            index += 1
        else:
            result.missing.append(f"-{option.short}")
        break
    return index


def _quoted(tokens: Sequence[str]) -> str:
    return ", ".join(f"'{token}'" for token in tokens)


def _times(count: int) -> str:
    return f"{count} time{'s' if count > 1 else ''}"


def parse_integer(value: str, maximum: int = sys.maxsize) -> int | None:
    """Convert a positive integer literal, None if malformed or out of range."""
    if INTEGER.fullmatch(value) is None:
        return None
    # int() refuses very long strings, so bound the length first
    digits = value.lstrip("0")
    if not digits or len(digits) > len(str(maximum)):
        return None
    number = int(digits)
    return number if number <= maximum else None


def parse_decimal(value: str) -> float | None:
    """Convert a positive decimal literal, None if malformed or out of range."""
    if DECIMAL.fullmatch(value) is None:
        return None
    number = float(value)
    # Longer timeouts overflow Event.wait()
    return number if 0 < number <= threading.TIMEOUT_MAX else None


class Validator:
    """
    Validate cpuwatch command lines.

    Diagnostics go to the ``cpuwatch.options`` logger, one line per problem,
    prefixed with the program name.
    """

    def __init__(self, prog: str) -> None:
        self._log = ProgramLogger(logger, prog)

    @property
    def prog(self) -> str:
        return self._log.prog

    def validate(self, args: Sequence[str]) -> Configuration:
        """
        Build a Configuration from ``args`` (without the program name).

        Raises:
            HelpRequested: If --help/-h appears as an option anywhere.
            InvalidCommandLine: If any problem was found. All problems are
                logged before raising.
        """
        result = scan(args)
        if result.help:
            raise HelpRequested()

        for token in result.positional:
            self._log.debug("ignoring argument '%s'", token)

        problems = self.problems(result)
        if problems:
            self._log.error("Error(s) processing command line arguments.")
            for problem in problems:
                self._log.error("%s", problem)
            raise InvalidCommandLine(problems)

        interval = result.given(INTERVAL)
        samples = result.given(SAMPLES)
        source = result.given(SOURCE)
        return Configuration(
            output=result.given(OUTPUT)[0],
            cpus=parse_integer(result.given(CPUS)[0]),
            interval=parse_decimal(interval[0]) if interval else 1.0,
            samples=parse_integer(samples[0], MAX_SAMPLES) if samples else 1,
            source=source[0] if source else "proc",
            verbose=VERBOSE.name in result.flags,
        )

    def problems(self, result: ScanResult) -> list[str]:
        """Describe every problem in ``result``, in a fixed category order."""
        problems: list[str] = []

        if result.unrecognized:
            count = len(result.unrecognized)
            problems.append(
                f"{count} option{' was' if count == 1 else 's were'} not recognised: "
                f"{_quoted(result.unrecognized)}"
            )
        if result.missing:
            count = len(result.missing)
            problems.append(
                f"{count} option{' was' if count == 1 else 's were'} given without an argument: "
                f"{_quoted(result.missing)}"
            )

        outputs = result.given(OUTPUT)
        problems.extend(self._count_problems(OUTPUT, outputs, required=True))
        if "" in outputs:
            problems.append(f"{OUTPUT.label} was given an empty path.")

        cpus = result.given(CPUS)
        problems.extend(self._count_problems(CPUS, cpus, required=True))
        bad = [value for value in cpus if parse_integer(value) is None]
        if bad:
            problems.append(
                f"{CPUS.label} was given improperly {_times(len(bad))}: {_quoted(bad)}. "
                "The number of CPUs must be a positive integer."
            )

        intervals = result.given(INTERVAL)
        problems.extend(self._count_problems(INTERVAL, intervals))
        bad = [value for value in intervals if parse_decimal(value) is None]
        if bad:
            problems.append(
                f"{INTERVAL.label} was given improperly {_times(len(bad))}: {_quoted(bad)}. "
                "The interval must be a positive number of seconds."
            )

        samples = result.given(SAMPLES)
        problems.extend(self._count_problems(SAMPLES, samples))
        bad = [value for value in samples if parse_integer(value, MAX_SAMPLES) is None]
        if bad:
            problems.append(
                f"{SAMPLES.label} was given improperly {_times(len(bad))}: {_quoted(bad)}. "
                f"The number of samples must be a positive integer up to {MAX_SAMPLES}."
            )

        sources = result.given(SOURCE)
        problems.extend(self._count_problems(SOURCE, sources))
        bad = [value for value in sources if value not in SOURCES]
        if bad:
            problems.append(
                f"{SOURCE.label} was given improperly {_times(len(bad))}: {_quoted(bad)}. "
                f"The source must be one of: {', '.join(SOURCES)}."
            )

        return problems

    @staticmethod
    def _count_problems(option: Option, values: list[str], required: bool = False) -> list[str]:
        if len(values) > 1:
            return [f"{option.label} was given {len(values)} times (1 maximum)."]
        if required and not values:
            return [f"{option.label} was not given."]
        return []
