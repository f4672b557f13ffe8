"""cpuwatch - command line entry point."""

import logging
import os
import signal
import sys
from collections.abc import Sequence

from cpuwatch.log import ProgramLogger
from cpuwatch.monitor import MonitorError, UtilizationMonitor
from cpuwatch.options import UsageError, Validator

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2

USAGE = """
usage: cpuwatch <--output=PATH> <--cpus=NUM> [options]

Options:
 -h, --help                 Displays this usage statement.
 -o <PATH>, --output=PATH   The CPU utilisation should be written to PATH.
 -c <NUM>, --cpus=NUM       Number of CPUs on the system.
 -n <NUM>, --samples=NUM    Take a moving average of NUM samples. DEFAULT=1
 -i <NUM>, --interval=NUM   Number of seconds between samples. DEFAULT=1
 -s <NAME>, --source=NAME   Read CPU counters from 'proc' (/proc/uptime) or
                            'psutil'. DEFAULT=proc
 -v, --verbose              Log every sample to standard error.

Examples:
cpuwatch -o output -i1 -n5 -c4
  Writes to the file 'output' every 1 second a 5*1 second moving average
  for a 4-core system.
cpuwatch -o output -i60 -c12
  Writes to the file 'output' every 60 seconds the average CPU utilisation
  for the previous 60 seconds assuming the system has 12 cores.

"""

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def configure_logging(verbose: bool = False) -> logging.Handler:
    """Send cpuwatch log records to standard error and return the handler."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger = logging.getLogger("cpuwatch")
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return handler


def run(prog: str, args: Sequence[str]) -> int:
    """Validate ``args`` and sample until stopped. Returns the exit status."""
    try:
        config = Validator(prog).validate(args)
    except UsageError:
        print(USAGE, end="", file=sys.stderr)
        return EXIT_USAGE

    if config.verbose:
        logging.getLogger("cpuwatch").setLevel(logging.DEBUG)

    monitor = UtilizationMonitor(config, prog)
    previous = {signum: signal.signal(signum, lambda *_: monitor.stop()) for signum in SHUTDOWN_SIGNALS}
    try:
        monitor.run()
    except MonitorError as e:
        ProgramLogger(logger, prog).error("%s", e)
        return EXIT_FAILURE
    finally:
        for signum, handler in previous.items():
            # None means the handler was not installed from Python
            if handler is not None:
                signal.signal(signum, handler)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the cpuwatch command."""
    if argv is None:
        argv = sys.argv
    prog = os.path.basename(argv[0]) if argv else "cpuwatch"

    handler = configure_logging()
    try:
        return run(prog, argv[1:])
    finally:
        package_logger = logging.getLogger("cpuwatch")
        package_logger.removeHandler(handler)
        package_logger.setLevel(logging.NOTSET)


if __name__ == "__main__":
    sys.exit(main())
