"""Rename-and-reopen rotation of a handle's live file."""

import logging
import os
from datetime import datetime, timedelta

from logrotor import codec
from logrotor.errors import CloseError, RenameError, ReopenAfterRotateError

logger = logging.getLogger(__name__)


class Rotator:
    """Rotates the live file of one Handle while holding the handle's lock.

    Writers blocked on the lock see either the old or the new stream, never
    a half-rotated one.
    """

    def __init__(self, handle, logger=None, time_func=None):
        self._handle = handle
        self._log = logger or logging.getLogger(__name__)
        self._time_func = time_func or (lambda: datetime.now().astimezone())

    def _free_name(self, now: datetime) -> str:
        # Names only carry whole seconds; never overwrite an earlier copy.
        path = self._handle.path
        rotated = codec.encode(path, now)
        while os.path.exists(rotated) or os.path.exists(codec.encode_compressed(rotated)):
            now += timedelta(seconds=1)
            rotated = codec.encode(path, now)
        return rotated

    def rotate(self, now: datetime | None = None) -> str | None:
        """Rotate the live file. Returns the rotated path, or None if there was nothing to rotate."""
        handle = self._handle
        path = handle.path
        with handle.lock:
            try:
                handle.close_stream()
            except OSError as e:
                raise CloseError(path, e) from e

            rotated_path = None
            if os.path.exists(path):
                rotated_path = self._free_name(now or self._time_func())
                try:
                    os.rename(path, rotated_path)
                except FileNotFoundError:
                    rotated_path = None
                except OSError as e:
                    raise RenameError(path, rotated_path, e) from e

            try:
                if handle.owns_file:
                    handle.open_stream()
                else:
                    open(path, "a").close()
            except OSError as e:
                raise ReopenAfterRotateError(path, rotated_path, e) from e

        if rotated_path:
            self._log.info("Rotated file %s into %s", path, rotated_path)
        else:
            self._log.debug("Nothing to rotate at %s", path)
        return rotated_path
