from __future__ import annotations
from dataclasses import dataclass
from typing import BinaryIO, NamedTuple, Tuple
import logging
import os

logger = logging.getLogger(__name__)


# -------------------------
# Model
# -------------------------
class FileIdentity(NamedTuple):
    """Device + inode pair of a physical file. Stable across renames."""
    device: int
    inode: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "FileIdentity":
        return cls(device=st.st_dev, inode=st.st_ino)


@dataclass(frozen=True)
class StartFrom:
    """
    Where a watch session starts reading.

      - beginning: byte 0
      - offset:    an explicit byte position (may lie past EOF)
      - end:       the length of the file at open time
    """
    kind: str
    offset: int = 0

    @classmethod
    def beginning(cls) -> "StartFrom":
        return cls("beginning")

    @classmethod
    def at(cls, offset: int) -> "StartFrom":
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValueError(f"Start offset must be a non-negative integer, got {offset!r}")
        return cls("offset", offset)

    @classmethod
    def end(cls) -> "StartFrom":
        return cls("end")

    def resolve(self, length: int) -> int:
        if self.kind == "beginning":
            return 0
        if self.kind == "offset":
            return self.offset
        return length

    def __str__(self) -> str:
        if self.kind == "offset":
            return f"offset:{self.offset}"
        return self.kind


BEGINNING = StartFrom.beginning()
END = StartFrom.end()


def parse_start_from(text: str, strict: bool = False) -> StartFrom:
    """
    Parse a textual starting policy.

    Lenient mode only knows "start"; every other value (including "end")
    means END. Strict mode accepts "start"/"beginning", "end" or a decimal
    byte offset and rejects anything else.
    """
    value = (text or "").strip().lower()
    if strict:
        if value in ("start", "beginning"):
            return BEGINNING
        if value == "end":
            return END
        if value.isdigit():
            return StartFrom.at(int(value))
        raise ValueError(
            f"Invalid start policy: {text!r}\n"
            f"Expected 'start', 'end' or a byte offset"
        )

    if value == "start":
        return BEGINNING
    if value != "end":
        logger.warning("Unrecognized start policy %r, starting from end of file", text)
    return END


# -------------------------
# File access
# -------------------------
def identity_of(path: str) -> FileIdentity:
    """Identity of whatever file `path` currently names."""
    return FileIdentity.from_stat(os.stat(path))


def reopen(path: str) -> Tuple[BinaryIO, FileIdentity, int]:
    """Open a fresh handle at byte 0. Identity and length come from the handle itself."""
    handle = open(path, "rb")
    try:
        st = os.fstat(handle.fileno())
    except OSError:
        handle.close()
        raise
    return handle, FileIdentity.from_stat(st), st.st_size


def open_at(path: str, start_from: StartFrom = END) -> Tuple[BinaryIO, FileIdentity, int]:
    """
    Open `path` and position the handle according to `start_from`.
    Returns (handle, identity, offset).
    """
    try:
        handle, identity, length = reopen(path)
    except FileNotFoundError as e:
        raise FileNotFoundError(
            f"Log file not found: {path}\n"
            f"Please check the file path and try again"
        ) from e
    except PermissionError as e:
        raise PermissionError(
            f"Permission denied: {path}\n"
            f"Please ensure you have read permission for this file"
        ) from e

    offset = start_from.resolve(length)
    handle.seek(offset, os.SEEK_SET)
    logger.debug("Opened %s at offset %d (start=%s, length=%d)", path, offset, start_from, length)
    return handle, identity, offset
