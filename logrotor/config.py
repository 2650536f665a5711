"""Configuration: frozen dataclasses loaded from YAML/JSON files and env vars."""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta

import jsonschema
import yaml

from logrotor.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60.0
MAX_DAYS = timedelta.max.days

# Maps each file path to its rotation policy.
POLICY_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": {
        "type": ["object", "null"],
        "properties": {
            "size": {"type": "integer", "minimum": 0},
            "days": {"type": "number", "minimum": 0, "maximum": MAX_DAYS},
            "keep": {"type": "number", "minimum": 0, "maximum": MAX_DAYS},
            "max_files_keep": {"type": "integer", "minimum": 0},
            "compress": {"type": "integer", "minimum": -1},
            "scan_interval": {"type": "number", "minimum": 0},
            "poll_interval": {"type": "number", "exclusiveMinimum": 0},
        },
        "additionalProperties": False,
    },
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class RotationPolicy:
    size: int = 0                                  # bytes, 0 = no size trigger
    age: timedelta = timedelta(0)                  # 0 = no age trigger
    keep: timedelta = timedelta(0)                 # 0 = keep forever by age
    max_files_keep: int = 0                        # 0 = unbounded by count
    compress: int = 0                              # newest N stay plain, -1 = never
    scan_interval: float = 0.0                     # seconds, 0 = no periodic scan
    poll_interval: float = DEFAULT_POLL_INTERVAL   # size trigger polling

    @property
    def rotates(self) -> bool:
        return self.size > 0 or self.age > timedelta(0)

    @property
    def keeps_forever(self) -> bool:
        return self.keep <= timedelta(0) and self.max_files_keep <= 0

    @classmethod
    def from_dict(cls, d: dict, poll_interval: float = DEFAULT_POLL_INTERVAL) -> "RotationPolicy":
        return cls(
            size=int(d.get("size", 0)),
            age=timedelta(days=d.get("days", 0)),
            keep=timedelta(days=d.get("keep", 0)),
            max_files_keep=int(d.get("max_files_keep", 0)),
            compress=int(d.get("compress", 0)),
            scan_interval=float(d.get("scan_interval", 0)),
            poll_interval=float(d.get("poll_interval", poll_interval)),
        )


@dataclass(frozen=True)
class HandleConfig:
    path: str
    name: str = ""
    level: str = "ERROR"
    verbose: bool = False
    rotate: bool = False
    rotation: RotationPolicy = field(default_factory=RotationPolicy)

    @classmethod
    def from_dict(cls, d: dict) -> "HandleConfig":
        return cls(
            path=d["path"],
            name=d.get("name", ""),
            level=d.get("level", "ERROR"),
            verbose=bool(d.get("verbose", False)),
            rotate=bool(d.get("rotate", False)),
            rotation=RotationPolicy.from_dict(d.get("rotation") or {}),
        )


@dataclass(frozen=True)
class DaemonConfig:
    policies: dict[str, RotationPolicy] = field(default_factory=dict)
    verbose: bool = False
    watch: bool = False


def validate_policies(data) -> None:
    """Raise ConfigError listing every schema violation in *data*."""
    validator = jsonschema.Draft202012Validator(POLICY_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        details = "; ".join(
            f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errors
        )
        raise ConfigError(f"Invalid rotation config: {details}")


def load_policies(path: str, poll_interval: float = DEFAULT_POLL_INTERVAL) -> dict[str, RotationPolicy]:
    """Read a YAML (or JSON) file mapping log paths to rotation policies."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse config {path}: {e}") from e

    if data is None:
        data = {}
    validate_policies(data)
    policies = {}
    for p, entry in data.items():
        try:
            policies[str(p)] = RotationPolicy.from_dict(entry or {}, poll_interval)
        except (OverflowError, ValueError) as e:
            raise ConfigError(f"Invalid rotation config: {p}: {e}") from e
    logger.info("Loaded %d rotation entr%s from %s", len(data), "y" if len(data) == 1 else "ies", path)
    return policies


def load_daemon_config(args) -> DaemonConfig:
    """Build DaemonConfig from parsed CLI args, falling back to env vars."""
    config_path = args.config or os.environ.get("LOGROTOR_CONFIG")
    verbose = args.verbose or _parse_bool(os.environ.get("LOGROTOR_VERBOSE", "false"))
    raw_poll = os.environ.get("LOGROTOR_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL))
    try:
        poll_interval = float(raw_poll)
    except ValueError as e:
        raise ConfigError(f"LOGROTOR_POLL_INTERVAL must be a number, got {raw_poll!r}") from e
    if not poll_interval > 0:
        raise ConfigError(f"LOGROTOR_POLL_INTERVAL must be positive, got {raw_poll!r}")

    if config_path:
        policies = load_policies(config_path, poll_interval)
    elif args.path:
        try:
            policies = {
                args.path: RotationPolicy(
                    size=args.size,
                    age=timedelta(days=args.days),
                    keep=timedelta(days=args.keep),
                    max_files_keep=args.max_files,
                    compress=args.compress,
                    poll_interval=poll_interval,
                )
            }
        except (OverflowError, ValueError) as e:
            raise ConfigError(f"Invalid options for {args.path}: {e}") from e
    else:
        raise ConfigError("Either a config file or a single file path is required")

    return DaemonConfig(policies=policies, verbose=verbose, watch=args.watch)
