from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Generator, Iterator, Optional
import logging
import os
import threading

from . import tracker
from .config import WatchConfig, check_encoding, check_intervals
from .tracker import END, FileIdentity, StartFrom

logger = logging.getLogger(__name__)


# -------------------------
# Model
# -------------------------
class Action(Enum):
    """What the consumer wants done after a line was delivered."""
    NONE = "none"
    SEEK_TO_END = "seek_to_end"
    STOP = "stop"


class WatchState(Enum):
    POLLING = "polling"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Line:
    offset: int  # byte position of the first byte of the line
    length: int  # bytes consumed, terminator included
    text: str    # decoded, without the trailing "\n"


Callback = Callable[[int, int, str], Optional[Action]]
ErrorHook = Callable[[OSError], None]

# caps the backoff exponent so the float product cannot overflow
_MAX_BACKOFF_STEPS = 32


# -------------------------
# Watcher
# -------------------------
class LogWatcher:
    """
    Follow a single log file like `tail -F`.

    Lines are delivered whole (a trailing partial line waits until its
    terminator is written) together with their byte offset and byte length.
    When the path starts naming a different file (device/inode changed) the
    old handle is drained of complete lines first, then the new file is read
    from byte 0. All state is owned by the thread running `lines()`/`watch()`;
    only `stop()` may be called from elsewhere.
    """

    def __init__(
        self,
        path: str,
        handle: BinaryIO,
        identity: FileIdentity,
        offset: int,
        *,
        poll_interval: float = 0.2,
        max_poll_interval: Optional[float] = None,
        detect_truncation: bool = False,
        encoding: str = "utf-8",
        on_error: Optional[ErrorHook] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        check_intervals(poll_interval, max_poll_interval)
        check_encoding(encoding)
        self.path = str(path)
        self.poll_interval = poll_interval
        self.max_poll_interval = max_poll_interval
        self.detect_truncation = detect_truncation
        self.encoding = encoding
        self.on_error = on_error
        self.identity = identity
        self.offset = offset
        self.state = WatchState.POLLING
        self._handle: Optional[BinaryIO] = handle
        self._sleep = sleep
        self._stop = threading.Event()
        # size seen by the last truncation check; shrinking below it means truncated
        self._last_size = os.fstat(handle.fileno()).st_size

    @classmethod
    def open(
        cls,
        path: str,
        start_from: StartFrom = END,
        poll_interval: float = 0.2,
        **kwargs,
    ) -> "LogWatcher":
        """Open `path` positioned per `start_from`. Open failures propagate to the caller."""
        check_intervals(poll_interval, kwargs.get("max_poll_interval"))
        check_encoding(kwargs.get("encoding", "utf-8"))
        handle, identity, offset = tracker.open_at(str(path), start_from)
        return cls(str(path), handle, identity, offset, poll_interval=poll_interval, **kwargs)

    @classmethod
    def from_config(cls, path: str, config: WatchConfig, **kwargs) -> "LogWatcher":
        return cls.open(
            path,
            config.start_policy(),
            config.poll_interval,
            max_poll_interval=config.max_poll_interval,
            detect_truncation=config.detect_truncation,
            encoding=config.encoding,
            **kwargs,
        )

    @property
    def draining(self) -> bool:
        return self.state is WatchState.DRAINING

    def __repr__(self) -> str:
        return (
            f"LogWatcher(path={self.path!r}, offset={self.offset}, "
            f"inode={self.identity.inode}, state={self.state.value})"
        )

    # -------------------------
    # Public API
    # -------------------------
    def lines(self) -> Generator[Line, Optional[Action], None]:
        """
        Yield lines until stopped. The value sent back into the generator
        is treated as the consumer's Action for the line just yielded.
        """
        idle_polls = 0
        try:
            while not self._stop.is_set():
                try:
                    line = self._read_line()
                except OSError as exc:
                    self._report(exc, f"Read error on {self.path}")
                    self._pause(self.poll_interval)
                    continue

                if line is not None:
                    idle_polls = 0
                    action = yield line
                    self._apply(action)
                    continue

                if self.state is WatchState.DRAINING:
                    self._switch_file()
                    continue

                if self._rotated():
                    logger.info("Rotation detected on %s, draining old file from offset %d", self.path, self.offset)
                    self.state = WatchState.DRAINING
                    continue

                self._pause(self._idle_interval(idle_polls))
                idle_polls += 1
        finally:
            self.state = WatchState.STOPPED

    def watch(self, callback: Callback) -> None:
        """
        Blocking callback form of `lines()`.
        callback(offset, length, text) may return an Action (None means Action.NONE).
        """
        gen = self.lines()
        try:
            line = next(gen, None)
            while line is not None:
                action = callback(line.offset, line.length, line.text)
                line = gen.send(action)
        except StopIteration:
            pass
        finally:
            gen.close()

    def stop(self) -> None:
        """Ask the loop to stop. Safe to call from another thread or from the callback."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def close(self) -> None:
        self.stop()
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "LogWatcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -------------------------
    # Internals
    # -------------------------
    def _read_line(self) -> Optional[Line]:
        raw = self._handle.readline()
        if not raw:
            return None
        if not raw.endswith(b"\n"):
            # partial write: re-read from the same offset on the next attempt
            logger.debug("Partial line at offset %d in %s (%d bytes), waiting", self.offset, self.path, len(raw))
            self._handle.seek(self.offset, os.SEEK_SET)
            return None

        start = self.offset
        self.offset += len(raw)
        self._handle.seek(self.offset, os.SEEK_SET)
        return Line(offset=start, length=len(raw), text=raw[:-1].decode(self.encoding, errors="replace"))

    def _apply(self, action: Optional[Action]) -> None:
        if action is None or action is Action.NONE:
            return
        if action is Action.SEEK_TO_END:
            self.offset = self._handle.seek(0, os.SEEK_END)
            logger.info("Seek to end of %s (offset %d)", self.path, self.offset)
        elif action is Action.STOP:
            logger.debug("Stop requested by consumer")
            self.stop()
        else:
            raise TypeError(f"Unsupported callback action: {action!r}")

    def _rotated(self) -> bool:
        try:
            current = tracker.identity_of(self.path)
        except FileNotFoundError:
            logger.debug("%s is missing, waiting for it to reappear", self.path)
            return False
        except OSError as exc:
            self._report(exc, f"Cannot stat {self.path}")
            return False

        if current != self.identity:
            return True
        if self.detect_truncation:
            self._check_truncation()
        return False

    def _check_truncation(self) -> None:
        try:
            size = os.fstat(self._handle.fileno()).st_size
        except OSError as exc:
            self._report(exc, f"Cannot stat open handle of {self.path}")
            return
        last_size, self._last_size = self._last_size, size
        if size < last_size:
            logger.info("%s truncated (size %d < %d), restarting at 0", self.path, size, last_size)
            self.offset = 0
            self._handle.seek(0, os.SEEK_SET)

    def _switch_file(self) -> None:
        old, self._handle = self._handle, None
        if old is not None:
            old.close()

        while not self._stop.is_set():
            try:
                handle, identity, length = tracker.reopen(self.path)
            except FileNotFoundError:
                logger.debug("%s is missing, waiting for it to reappear", self.path)
            except OSError as exc:
                self._report(exc, f"Cannot reopen {self.path}")
            else:
                self._handle = handle
                self.identity = identity
                self.offset = 0
                self.state = WatchState.POLLING
                self._last_size = length
                logger.info("Reloaded %s (inode %d, %d bytes)", self.path, identity.inode, length)
                return
            self._pause(self.poll_interval)

    def _idle_interval(self, idle_polls: int) -> float:
        if self.max_poll_interval is None:
            return self.poll_interval
        steps = min(idle_polls, _MAX_BACKOFF_STEPS)
        return min(self.poll_interval * (2 ** steps), self.max_poll_interval)

    def _pause(self, seconds: float) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
        else:
            self._stop.wait(seconds)

    def _report(self, exc: OSError, message: str) -> None:
        logger.warning("%s: %s", message, exc)
        if self.on_error is not None:
            self.on_error(exc)


def follow_file(
    path: str,
    start_from: StartFrom = END,
    poll_interval: float = 0.2,
    **kwargs,
) -> Iterator[Line]:
    """
    Follow a text file like `tail -F` and yield Line objects.
    Values sent into the generator are forwarded as Actions.
    The file handle is released when the generator is closed.
    """
    watcher = LogWatcher.open(path, start_from, poll_interval, **kwargs)
    try:
        yield from watcher.lines()
    finally:
        watcher.close()
