"""Background rotation triggers: size polling, fixed intervals, file events."""

import logging
import os
import threading

from watchdog.events import FileSystemEventHandler

logger = logging.getLogger(__name__)


class Trigger:
    """A daemon thread that invokes *callback* until stop() is called.

    Exceptions raised by the callback are logged and never end the thread.
    """

    def __init__(self, name: str, callback, logger=None):
        self._name = name
        self._callback = callback
        self._log = logger or logging.getLogger(__name__)
        self._shutdown = threading.Event()
        self._thread = None
        self._fired = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def fired(self) -> int:
        return self._fired

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        self._shutdown.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _fire(self):
        self._fired += 1
        try:
            self._callback()
        except Exception:
            self._log.exception("Trigger %s callback failed", self._name)

    def _run(self):
        raise NotImplementedError


class SizeTrigger(Trigger):
    """Polls the live file and fires once it grows past *threshold* bytes.

    A missing file (e.g. mid-rotation) just skips the poll. poke() forces an
    early check, used by LiveFileEventHandler.
    """

    def __init__(self, path: str, threshold: int, callback,
                 poll_interval: float = 60.0, logger=None):
        super().__init__(f"size-trigger:{path}", callback, logger)
        self._path = path
        self._threshold = threshold
        self._poll_interval = poll_interval
        self._wake = threading.Event()

    def poke(self):
        self._wake.set()

    def stop(self, timeout: float = 5.0):
        self._shutdown.set()
        self._wake.set()
        super().stop(timeout)

    def check(self) -> bool:
        """Fire if the live file is over the threshold. Returns True if fired."""
        try:
            size = os.stat(self._path).st_size
        except FileNotFoundError:
            return False
        except OSError as e:
            self._log.warning("Cannot stat %s: %s", self._path, e)
            return False
        if size <= self._threshold:
            return False
        self._log.debug("%s is %d bytes (threshold %d), rotating", self._path, size, self._threshold)
        self._fire()
        return True

    def _run(self):
        while not self._shutdown.is_set():
            self.check()
            self._wake.wait(timeout=self._poll_interval)
            self._wake.clear()


class IntervalTrigger(Trigger):
    """Fires every *interval* seconds, measured from the end of the last wait."""

    def __init__(self, name: str, interval: float, callback, logger=None):
        super().__init__(name, callback, logger)
        self._interval = interval

    def _run(self):
        while not self._shutdown.wait(timeout=self._interval):
            self._fire()


class LiveFileEventHandler(FileSystemEventHandler):
    """Pokes a SizeTrigger whenever its live file is written to."""

    def __init__(self, path: str, trigger: SizeTrigger):
        super().__init__()
        self._path = os.path.abspath(path)
        self._trigger = trigger

    @property
    def directory(self) -> str:
        return os.path.dirname(self._path)

    def on_modified(self, event):
        if not event.is_directory and os.path.abspath(event.src_path) == self._path:
            self._trigger.poke()

    def on_created(self, event):
        self.on_modified(event)
