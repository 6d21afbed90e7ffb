"""Configuration: frozen dataclass loaded from YAML file, env vars and CLI args."""

import argparse
import dataclasses
import logging
import os
from dataclasses import dataclass

import yaml

from slowlog_alert.segmenter import BoundaryPolicy

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Invalid or missing configuration; the process exits before tailing."""


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    webhook_url: str = ""
    slow_log_file: str = "/var/log/mysql/mysql-slow.log"
    threshold: float = 0.5
    test: bool = False
    from_beginning: bool = False
    follow_rotation: bool = True
    poll_interval: float = 1.0
    restart_delay: float = 1.0
    boundary_policy: str = "start"
    max_entry_lines: int = 1000
    notify_timeout: float = 10.0
    notify_attempts: int = 1
    async_dispatch: bool = False
    queue_size: int = 100
    change_events: bool = True
    log_level: str = "INFO"

    @property
    def boundary(self) -> BoundaryPolicy:
        return BoundaryPolicy(self.boundary_policy)


ENV_VARS = {
    "webhook_url": "WEBHOOK_URL",
    "slow_log_file": "SLOW_LOG_FILE",
    "threshold": "SLOW_QUERY_THRESHOLD",
    "from_beginning": "FROM_BEGINNING",
    "follow_rotation": "FOLLOW_ROTATION",
    "poll_interval": "POLL_INTERVAL",
    "restart_delay": "RESTART_DELAY",
    "boundary_policy": "BOUNDARY_POLICY",
    "max_entry_lines": "MAX_ENTRY_LINES",
    "notify_timeout": "NOTIFY_TIMEOUT",
    "notify_attempts": "NOTIFY_ATTEMPTS",
    "async_dispatch": "ASYNC_DISPATCH",
    "queue_size": "QUEUE_SIZE",
    "change_events": "CHANGE_EVENTS",
    "log_level": "LOG_LEVEL",
}

_FIELD_TYPES = {f.name: f.type for f in dataclasses.fields(Config)}


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slowlog-alert",
        description="Watch a MySQL slow-query log and post slow queries to a webhook",
    )
    parser.add_argument(
        "-u", "--webhook-url", "--webhookURL", dest="webhook_url",
        help="Webhook URL that receives the notifications (required)",
    )
    parser.add_argument(
        "-f", "--slow-log-file", "--slowLogFile", dest="slow_log_file",
        help="Path to the slow-query log (default: /var/log/mysql/mysql-slow.log)",
    )
    parser.add_argument(
        "-s", "--threshold", "--slowQueryThreshold", dest="threshold", type=float,
        help="Slow query threshold in seconds, integer or decimal (default: 0.5)",
    )
    parser.add_argument(
        "-t", "--test", action="store_const", const=True,
        help="Send one test webhook request and exit",
    )
    parser.add_argument(
        "--from-beginning", dest="from_beginning", action="store_const", const=True,
        help="Process entries already in the file on first start",
    )
    parser.add_argument(
        "--no-follow", dest="follow_rotation", action="store_const", const=False,
        help="Keep reading the original file after it is rotated away",
    )
    parser.add_argument("--poll-interval", dest="poll_interval", type=float)
    parser.add_argument("--restart-delay", dest="restart_delay", type=float)
    parser.add_argument(
        "--boundary", dest="boundary_policy",
        help="Entry boundary policy: 'start' (header lines, default) or 'end' (statement terminator)",
    )
    parser.add_argument("--max-entry-lines", dest="max_entry_lines", type=int)
    parser.add_argument("--notify-timeout", dest="notify_timeout", type=float)
    parser.add_argument("--notify-attempts", dest="notify_attempts", type=int)
    parser.add_argument(
        "--async-dispatch", dest="async_dispatch", action="store_const", const=True,
        help="Send notifications from a background thread through a bounded queue",
    )
    parser.add_argument("--queue-size", dest="queue_size", type=int)
    parser.add_argument(
        "--no-change-events", dest="change_events", action="store_const", const=False,
        help="Disable filesystem change events and rely on polling only",
    )
    parser.add_argument("--log-level", dest="log_level")
    parser.add_argument(
        "--config", default=None,
        help="Path to an optional YAML config file",
    )
    return parser


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def _coerce(name: str, value):
    kind = _FIELD_TYPES[name]
    try:
        if kind is bool:
            return _parse_bool(value)
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value for {name}: {value!r}") from e


def validate(config: Config) -> Config:
    if not config.webhook_url:
        raise ConfigError("webhook URL must be set")
    if config.threshold < 0:
        raise ConfigError("threshold must be >= 0")
    try:
        config.boundary
    except ValueError:
        raise ConfigError(
            f"boundary policy must be exactly one of 'start' or 'end', got {config.boundary_policy!r}"
        ) from None
    if config.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"unknown log level {config.log_level!r}")
    for name in ("poll_interval", "restart_delay", "notify_timeout"):
        if getattr(config, name) <= 0:
            raise ConfigError(f"{name} must be > 0")
    for name in ("max_entry_lines", "notify_attempts", "queue_size"):
        if getattr(config, name) < 1:
            raise ConfigError(f"{name} must be >= 1")
    return config


def load_config(argv: list[str] | None = None) -> Config:
    """Build Config from defaults <- YAML file <- env vars <- CLI args (highest priority)."""
    args = build_cli_parser().parse_args(argv)
    kwargs: dict = {}

    for key, value in load_yaml_config(args.config).items():
        key = key.replace("-", "_")
        if key not in _FIELD_TYPES:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        kwargs[key] = _coerce(key, value)

    for name, env_name in ENV_VARS.items():
        value = os.environ.get(env_name)
        if value is not None and value != "":
            kwargs[name] = _coerce(name, value)

    for name in _FIELD_TYPES:
        value = getattr(args, name, None)
        if value is not None:
            kwargs[name] = value

    return validate(Config(**kwargs))
