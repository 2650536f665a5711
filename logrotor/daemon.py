"""Standalone rotation daemon for files written by other processes."""

import argparse
import logging
import os
import signal
import sys
import threading

from watchdog.observers import Observer

from logrotor.config import DaemonConfig, load_daemon_config
from logrotor.errors import ConfigError
from logrotor.handle import Handle
from logrotor.trigger import LiveFileEventHandler, SizeTrigger

logger = logging.getLogger(__name__)

USAGE = """\
logrotor: usage: [-v] [-c FILE | -p PATH -s SIZE [-m N] [-z N]]

Multi file mode:
  -c PATH       Path to YAML/JSON config mapping log paths to policies
Single file mode:
  -p PATH       Path to file
  -s SIZE       Size in bytes to trigger rotation
  -m MAX        Max rotated files to keep in total (default: 5)
  -z COMPRESS   Number of rotated files to keep uncompressed, -1 turns off compression (default: 0)
"""


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logrotor", description="Rotate, compress and expire log files",
        usage=USAGE,
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=False,
                        help="Verbose output")
    parser.add_argument("-c", "--config", default=None,
                        help="Config location (multi file mode)")
    parser.add_argument("-p", "--path", default="",
                        help="Path to single file")
    parser.add_argument("-s", "--size", type=int, default=0,
                        help="Size in bytes before rotating the single file")
    parser.add_argument("-d", "--days", type=float, default=0,
                        help="Days before rotating the single file")
    parser.add_argument("-k", "--keep", type=float, default=0,
                        help="Days to keep rotated copies of the single file")
    parser.add_argument("-m", "--max-files", type=int, default=5,
                        help="Max rotated files to keep for the single file")
    parser.add_argument("-z", "--compress", type=int, default=0,
                        help="Rotated files kept uncompressed, -1 does not compress")
    parser.add_argument("--watch", action="store_true", default=False,
                        help="Check sizes on file modification events as well as by polling")
    return parser


def start_handles(config: DaemonConfig, log=None) -> list[Handle]:
    """Create one detached handle per configured file and start its rotation."""
    log = log or logger
    handles = []
    for path, policy in config.policies.items():
        handle = Handle.watch(path, logger=log)
        handle.setup_rotation(policy)
        handles.append(handle)
    return handles


def start_observer(handles: list[Handle]):
    """Schedule a watchdog observer nudging every size trigger. None if there are none."""
    handlers = [
        LiveFileEventHandler(handle.path, trigger)
        for handle in handles
        for trigger in handle.triggers
        if isinstance(trigger, SizeTrigger)
    ]
    if not handlers:
        return None
    observer = Observer()
    for h in handlers:
        observer.schedule(h, h.directory, recursive=False)
        logger.info("Watching directory: %s", h.directory)
    observer.start()
    return observer


def main(argv=None) -> int:
    parser = build_cli_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [logrotor] %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_daemon_config(args)
    except ConfigError as e:
        if not (args.config or os.environ.get("LOGROTOR_CONFIG")) and not args.path:
            parser.print_usage(sys.stderr)
            return 2
        logger.error("%s", e)
        return 1

    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    shutdown = threading.Event()

    def _shutdown(signum, _frame):
        logger.info("Shutdown signal received (signal %d), stopping...", signum)
        shutdown.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    handles = start_handles(config)
    observer = start_observer(handles) if config.watch else None
    logger.info("logrotor running for %d file(s). Press Ctrl+C to stop.", len(handles))

    while not shutdown.is_set():
        shutdown.wait(timeout=1)

    if observer is not None:
        observer.stop()
        observer.join(timeout=5)
    for handle in handles:
        handle.close()
    logger.info("logrotor stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
