"""Handle: one live log file, its leveled line writer, and its rotation."""

import logging
import threading

from logrotor.config import HandleConfig, RotationPolicy
from logrotor.errors import OpenError, ReopenAfterRotateError, RotationError
from logrotor.rotator import Rotator
from logrotor.scanner import RetentionScanner
from logrotor.trigger import IntervalTrigger, SizeTrigger

logger = logging.getLogger(__name__)

# Severity levels; a handle writes messages at or below its own level.
NONE = -10
ERROR = 0
INFO = 10
DEBUG = 20

LEVELS = {"NONE": NONE, "ERROR": ERROR, "INFO": INFO, "DEBUG": DEBUG}

_RECORD_LEVELS = {ERROR: logging.ERROR, INFO: logging.INFO, DEBUG: logging.DEBUG}
_PLAIN = logging.CRITICAL + 10

DEFAULT_DATE_FORMAT = "%Y/%m/%d %H:%M:%S"


def parse_level(name: str) -> int:
    """Map a level name to its severity; anything unknown means ERROR."""
    return LEVELS.get((name or "").upper(), ERROR)


class LineFormatter(logging.Formatter):
    """``<prefix><date> <tag><message>``; ERROR lines name the calling file and line."""

    def __init__(self, prefix: str = "", datefmt: str = DEFAULT_DATE_FORMAT):
        super().__init__(datefmt=datefmt)
        self.prefix = prefix

    def format(self, record):
        if record.levelno == logging.ERROR:
            tag = f"{record.filename}:{record.lineno} ERROR "
        elif record.levelno == logging.INFO:
            tag = "INFO "
        elif record.levelno == logging.DEBUG:
            tag = "DEBUG "
        else:
            tag = ""
        message = record.getMessage().rstrip("\n")
        return f"{self.prefix}{self.formatTime(record, self.datefmt)} {tag}{message}"


class Handle:
    """Owns the live file for one log and coordinates its rotation.

    Every write and every rotation takes ``lock``. When no stream is
    attached (detached handle, or a failed reopen) writes are dropped.
    """

    def __init__(self, path: str, name: str = "", level: int = ERROR,
                 verbose: bool = False, owns_file: bool = True, logger=None):
        self.path = path
        self.name = name
        self.level = level
        self.verbose = verbose
        self.owns_file = owns_file
        self.lock = threading.Lock()
        self._log = logger or logging.getLogger(__name__)
        self._prefix = f"{name}: " if name else ""
        self._datefmt = DEFAULT_DATE_FORMAT
        self._stream = None
        self._writer = None
        self._triggers = []
        self._scanner = None
        self._closed = False
        self.rotator = Rotator(self, logger=self._log)

    # ── construction ────────────────────────────────────────────────

    @classmethod
    def open(cls, config: HandleConfig, logger=None) -> "Handle":
        """Open *config.path* for append and start rotation if configured."""
        handle = cls(
            config.path,
            name=config.name,
            level=parse_level(config.level),
            verbose=config.verbose,
            logger=logger,
        )
        with handle.lock:
            try:
                handle.open_stream()
            except OSError as e:
                raise OpenError(config.path, e) from e

        if config.rotate:
            handle.setup_rotation(config.rotation)
            handle.println("Started")
        else:
            handle.println("Started, no log rotation selected")
        return handle

    @classmethod
    def watch(cls, path: str, logger=None) -> "Handle":
        """A detached handle for a file written by another process."""
        return cls(path, owns_file=False, logger=logger)

    # ── stream management (caller holds ``lock``) ───────────────────

    @property
    def attached(self) -> bool:
        return self._stream is not None

    def open_stream(self):
        stream = open(self.path, "a", encoding="utf-8")
        # Unregistered, so handles never share state through the logging manager.
        writer = logging.Logger(f"logrotor.handle.{self.name or self.path}", level=logging.DEBUG)
        writer.propagate = False
        handler = logging.StreamHandler(stream)
        handler.setFormatter(LineFormatter(self._prefix, self._datefmt))
        writer.addHandler(handler)
        self._stream = stream
        self._writer = writer

    def close_stream(self):
        stream, self._stream, self._writer = self._stream, None, None
        if stream is not None:
            stream.close()

    # ── rotation ────────────────────────────────────────────────────

    def setup_rotation(self, policy: RotationPolicy) -> list:
        """Start the triggers *policy* asks for and run one retention scan."""
        self._scanner = RetentionScanner(self.path, policy, logger=self._log)

        if policy.size > 0:
            self._log.info(
                "Starting logrotate service for file %s with byte trigger of %d bytes.",
                self.path, policy.size,
            )
            self.info("Log will rotate after about %d bytes", policy.size)
            self._start(SizeTrigger(
                self.path, policy.size, self.rotate_and_scan,
                poll_interval=policy.poll_interval, logger=self._log,
            ))

        if policy.age.total_seconds() > 0:
            self._log.info(
                "Starting logrotate service for file %s with age trigger of %s.",
                self.path, policy.age,
            )
            self.info("Log will rotate after %s", policy.age)
            self._start(IntervalTrigger(
                f"age-trigger:{self.path}", policy.age.total_seconds(),
                self.rotate_and_scan, logger=self._log,
            ))

        if not policy.rotates:
            self._log.info("No size or age trigger for %s, only retention scans will run.", self.path)

        if policy.scan_interval > 0:
            self._start(IntervalTrigger(
                f"scan-trigger:{self.path}", policy.scan_interval,
                self.scan, logger=self._log,
            ))

        if policy.keep.total_seconds() > 0:
            self._log.info("Rotated files of %s will be removed after %s.", self.path, policy.keep)
        if policy.max_files_keep > 0:
            self._log.info("Max %d rotated files of %s will be kept.", policy.max_files_keep, self.path)
        if policy.compress > -1:
            self._log.info("Will start to compress %s after %d rotations.", self.path, policy.compress)

        if policy.keeps_forever:
            self._log.warning(
                "Rotated copies of %s will be kept forever, this is probably not what "
                "you intended. Set keep and/or max_files_keep for this file.",
                self.path,
            )

        self.scan()
        return list(self._triggers)

    def _start(self, trigger):
        trigger.start()
        self._triggers.append(trigger)

    @property
    def triggers(self) -> list:
        return list(self._triggers)

    def rotate(self, now=None) -> str | None:
        return self.rotator.rotate(now)

    def scan(self, now=None):
        if self._scanner is None:
            return None
        return self._scanner.scan(now)

    def rotate_and_scan(self):
        """Trigger callback: rotate, log failures by severity, then scan."""
        try:
            self.rotate()
        except ReopenAfterRotateError as e:
            self._log.critical("%s; writes to %s are dropped until the next rotation", e, self.path)
        except RotationError as e:
            self._log.error("%s; will retry on next trigger", e)
        self.scan()

    def stop(self):
        for trigger in self._triggers:
            trigger.stop()
        self._triggers = []

    def close(self):
        self.stop()
        with self.lock:
            self.close_stream()
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── writing ─────────────────────────────────────────────────────

    def set_prefix(self, prefix: str):
        with self.lock:
            self._prefix = prefix
            self._reformat()

    def set_date_format(self, datefmt: str):
        with self.lock:
            self._datefmt = datefmt
            self._reformat()

    def _reformat(self):
        if self._writer is None:
            return
        for h in self._writer.handlers:
            h.setFormatter(LineFormatter(self._prefix, self._datefmt))

    def _write(self, record_level: int, msg: str, args, stacklevel: int = 3):
        with self.lock:
            if self._writer is None:
                return
            self._writer.log(record_level, msg, *args, stacklevel=stacklevel)
        if self.verbose:
            self._log.info(msg, *args)

    def _leveled(self, level: int, msg: str, args):
        if self.level < level:
            return
        self._write(_RECORD_LEVELS[level], msg, args, stacklevel=4)

    def println(self, msg: str):
        """Always written, regardless of level."""
        self._write(_PLAIN, "%s", (msg,))

    def print_request(self, remote_addr: str, action: str, result: str):
        self._write(_PLAIN, "%s: %s - %s", (remote_addr, action, result))

    def error(self, msg: str, *args):
        self._leveled(ERROR, msg, args)

    def info(self, msg: str, *args):
        self._leveled(INFO, msg, args)

    def debug(self, msg: str, *args):
        self._leveled(DEBUG, msg, args)

    def __repr__(self):
        return f"Handle(path={self.path!r}, name={self.name!r}, attached={self.attached})"
