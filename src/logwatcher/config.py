from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Optional
import codecs
import yaml

from .tracker import StartFrom, parse_start_from


def check_intervals(poll_interval: float, max_poll_interval: Optional[float]) -> None:
    if poll_interval <= 0:
        raise ValueError(f"poll_interval must be positive, got {poll_interval}")
    if max_poll_interval is not None and max_poll_interval < poll_interval:
        raise ValueError(
            f"max_poll_interval ({max_poll_interval}) must not be smaller "
            f"than poll_interval ({poll_interval})"
        )


def check_encoding(encoding: str) -> None:
    # lines are split on b"\n" before decoding
    try:
        codecs.lookup(encoding)
        newline = "\n".encode(encoding)
    except LookupError:
        raise ValueError(f"Unknown text encoding: {encoding}")
    if newline != b"\n":
        raise ValueError(
            f"Encoding {encoding!r} is not ASCII-compatible\n"
            f"Only encodings that write '\\n' as a single 0x0A byte are supported"
        )


@dataclass
class WatchConfig:
    poll_interval: float = 0.2
    max_poll_interval: Optional[float] = None
    start_from: str = "end"
    strict_start: bool = False
    detect_truncation: bool = False
    encoding: str = "utf-8"

    def start_policy(self) -> StartFrom:
        return parse_start_from(self.start_from, strict=self.strict_start)

    def validate(self) -> "WatchConfig":
        check_intervals(self.poll_interval, self.max_poll_interval)
        check_encoding(self.encoding)
        return self


_FIELDS = {f.name for f in fields(WatchConfig)}


def _flag(section: dict, name: str) -> bool:
    value = section.get(name, False)
    if not isinstance(value, bool):
        raise ValueError(f"Option '{name}' must be true or false, got {value!r}")
    return value


def load_config(path: str) -> WatchConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            f"Please ensure the file exists or specify a different config with --config"
        )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file {path}: {e}")

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")

    section = data.get("watch", {}) or {}
    if not isinstance(section, dict):
        raise ValueError("'watch' section must be a mapping")

    unknown = sorted(set(section) - _FIELDS)
    if unknown:
        raise ValueError(f"Unknown option(s) in 'watch' section: {', '.join(unknown)}")

    try:
        max_poll = section.get("max_poll_interval")
        cfg = WatchConfig(
            poll_interval=float(section.get("poll_interval", 0.2)),
            max_poll_interval=float(max_poll) if max_poll is not None else None,
            start_from=str(section.get("start_from", "end")),
            strict_start=_flag(section, "strict_start"),
            detect_truncation=_flag(section, "detect_truncation"),
            encoding=str(section.get("encoding", "utf-8")),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value in configuration file {path}: {e}")

    return cfg.validate()
