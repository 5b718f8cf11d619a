"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides
common fixtures and configuration for all test files.
"""
from __future__ import annotations
import os
import pytest
from pathlib import Path


class ScriptedSleep:
    """
    Replacement for the watcher's poll sleep.
    Each call runs the next scripted step (append, rotate, ...);
    once the script is exhausted the watcher is stopped.
    """
    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = []
        self.watcher = None

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.steps:
            self.steps.pop(0)()
        elif self.watcher is not None:
            self.watcher.stop()


@pytest.fixture
def log_path(tmp_path):
    """Path of a log file inside a fresh temporary directory."""
    return tmp_path / "app.log"


@pytest.fixture
def scripted_sleep():
    return ScriptedSleep


@pytest.fixture
def append():
    """append(path, text) writes bytes at the end of the file and flushes."""
    def _append(path: Path, text: str) -> None:
        with open(path, "ab") as f:
            f.write(text.encode("utf-8"))
    return _append


@pytest.fixture
def rotate(tmp_path):
    """rotate(path, text) atomically replaces `path` with a new file holding `text`."""
    def _rotate(path: Path, text: str) -> None:
        fresh = tmp_path / (path.name + ".new")
        fresh.write_bytes(text.encode("utf-8"))
        os.replace(fresh, path)
    return _rotate
