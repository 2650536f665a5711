"""Retention scanning: expire, compress, and trim rotated copies of a log file."""

import gzip
import logging
import os
import shutil
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone

from logrotor import codec
from logrotor.config import RotationPolicy
from logrotor.errors import CompressionError, ScanError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RotatedFile:
    path: str
    timestamp: datetime
    compressed: bool


@dataclass
class ScanResult:
    expired: list[str] = field(default_factory=list)
    compressed: list[str] = field(default_factory=list)
    trimmed: list[str] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)
    remaining: list[RotatedFile] = field(default_factory=list)


def compress_file(filepath: str) -> str:
    """Gzip-compress a file in place. Returns the .gz path.

    The original is removed only after the .gz has been fully written; a
    partial .gz is cleaned up on failure.
    """
    gz_path = codec.encode_compressed(filepath)
    try:
        with open(filepath, "rb") as f_in, gzip.open(gz_path, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
    except FileNotFoundError:
        raise
    except OSError as e:
        _remove_quietly(gz_path)
        raise CompressionError(filepath, e) from e
    try:
        os.remove(filepath)
    except FileNotFoundError:
        pass
    return gz_path


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        pass


def collect_rotated_files(directory: str, base_name: str, log=None) -> list[RotatedFile]:
    """List rotated copies of *base_name* in *directory*, oldest first.

    Entries sharing the prefix but not decoding to a timestamp are skipped.
    Raises ScanError when the directory itself cannot be listed.
    """
    log = log or logger
    rotated = []
    try:
        entries = list(os.scandir(directory))
    except FileNotFoundError:
        return []
    except OSError as e:
        raise ScanError(directory, e) from e

    prefix = base_name + "."
    for entry in entries:
        if not entry.name.startswith(prefix):
            continue
        try:
            if entry.is_dir():
                continue
        except OSError as e:
            log.warning("Skipping %s: %s", entry.path, e)
            continue
        decoded = codec.decode(entry.name, base_name)
        if decoded is None:
            log.debug("Skipping %s: not a rotated copy of %s", entry.path, base_name)
            continue
        rotated.append(RotatedFile(entry.path, decoded.timestamp, decoded.compressed))

    rotated.sort(key=lambda f: (f.timestamp, f.path))
    return rotated


class RetentionScanner:
    """Applies a RotationPolicy to the rotated copies of one live file.

    Passes always run in the order expire, compress, trim so that a file
    already past its retention age is never compressed first.
    """

    def __init__(self, path: str, policy: RotationPolicy, logger=None, time_func=None):
        self._path = path
        self._policy = policy
        self._log = logger or logging.getLogger(__name__)
        self._time_func = time_func or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    @property
    def directory(self) -> str:
        return os.path.dirname(self._path) or "."

    @property
    def base_name(self) -> str:
        return os.path.basename(self._path)

    def scan(self, now: datetime | None = None) -> ScanResult:
        with self._lock:
            return self._scan(now or self._time_func())

    def _scan(self, now: datetime) -> ScanResult:
        result = ScanResult()
        try:
            files = collect_rotated_files(self.directory, self.base_name, self._log)
        except ScanError as e:
            self._log.error("%s", e)
            result.errors.append(e)
            return result

        files = self._drop_stale_archives(files, result)
        files = self._expire(files, now, result)
        files = self._compress(files, result)
        files = self._trim(files, result)
        result.remaining = files
        return result

    def _delete(self, path: str, result: ScanResult) -> bool:
        try:
            os.remove(path)
        except FileNotFoundError:
            self._log.debug("%s already removed", path)
        except OSError as e:
            self._log.error("Failed to remove %s: %s", path, e)
            result.errors.append(e)
            return False
        return True

    def _drop_stale_archives(self, files, result):
        """Collapse a plain copy and its .gz into one entry, keeping the plain file.

        compress_file removes the plain copy only after the .gz is complete, so
        when both exist the .gz may be partial. The compress pass rebuilds it.
        """
        plain = {f.path for f in files if not f.compressed}
        kept = []
        for f in files:
            if f.compressed and f.path[: -len(codec.GZIP_SUFFIX)] in plain:
                if self._delete(f.path, result):
                    self._log.warning("Removed %s, its uncompressed copy still exists", f.path)
                continue
            kept.append(f)
        return kept

    def _expire(self, files, now, result):
        keep = self._policy.keep
        if keep <= timedelta(0):
            return files
        survivors = []
        for f in files:
            if now - f.timestamp > keep:
                if self._delete(f.path, result):
                    result.expired.append(f.path)
                    self._log.info("Removed %s due to reached days to keep.", f.path)
                    continue
            survivors.append(f)
        return survivors

    def _compress(self, files, result):
        threshold = self._policy.compress
        if threshold < 0:
            return files
        updated = []
        cutoff = len(files) - threshold
        for i, f in enumerate(files):
            if i >= cutoff or f.compressed:
                updated.append(f)
                continue
            try:
                gz_path = compress_file(f.path)
            except FileNotFoundError:
                self._log.debug("%s disappeared before compression", f.path)
                continue
            except CompressionError as e:
                self._log.error("%s", e)
                result.errors.append(e)
                updated.append(f)
                continue
            result.compressed.append(gz_path)
            self._log.info("Gzipped %s", f.path)
            updated.append(replace(f, path=gz_path, compressed=True))
        return updated

    def _trim(self, files, result):
        limit = self._policy.max_files_keep
        if limit <= 0 or len(files) <= limit:
            return files
        excess = len(files) - limit
        kept = []
        for f in files[:excess]:
            if self._delete(f.path, result):
                result.trimmed.append(f.path)
                self._log.info("Removed %s due to reached amount of logfiles.", f.path)
            else:
                kept.append(f)
        return kept + files[excess:]
