"""Configuration: a frozen dataclass built from defaults, a YAML file, env vars and CLI args.

Precedence, lowest to highest: dataclass defaults, YAML file (``--config`` or
``CONFIG_PATH``), environment variables, command line flags. Sources and
targets given by the user are tried before the built-in defaults.
"""

import argparse
import logging
import os
from dataclasses import dataclass

import yaml

from logship.target import is_target

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = ("/var/log/nginx/access.log",)
DEFAULT_TARGETS = ("http://127.0.0.1:9200/logger",)


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _parse_list(value) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    return tuple(v.strip() for v in str(value).split(",") if v.strip())


@dataclass(frozen=True)
class Config:
    sources: tuple[str, ...] = DEFAULT_SOURCES
    targets: tuple[str, ...] = DEFAULT_TARGETS
    batch_size: int = 500
    retention_days: int = 30
    archive_dir: str = "./archive"
    archive_prefix: str = "access"
    poll_interval: float = 0.5
    bulk_timeout: float = 25.0
    sweep_page_size: int = 500
    sweep_retry_delay: float = 6.0
    sweep_max_attempts: int = 0  # 0 = retry forever
    sample_size: int = 10
    confidence_threshold: float = 0.75
    create_index: bool = False
    from_start: bool = False
    shutdown_timeout: float = 30.0
    log_level: str = "INFO"


# field -> (env var, cast)
_SETTINGS = {
    "batch_size": ("BATCH_SIZE", int),
    "retention_days": ("RETENTION_DAYS", int),
    "archive_dir": ("ARCHIVE_DIR", str),
    "archive_prefix": ("ARCHIVE_PREFIX", str),
    "poll_interval": ("POLL_INTERVAL", float),
    "bulk_timeout": ("BULK_TIMEOUT", float),
    "sweep_page_size": ("SWEEP_PAGE_SIZE", int),
    "sweep_retry_delay": ("SWEEP_RETRY_DELAY", float),
    "sweep_max_attempts": ("SWEEP_MAX_ATTEMPTS", int),
    "sample_size": ("SAMPLE_SIZE", int),
    "confidence_threshold": ("CONFIDENCE_THRESHOLD", float),
    "create_index": ("CREATE_INDEX", _parse_bool),
    "from_start": ("FROM_START", _parse_bool),
    "shutdown_timeout": ("SHUTDOWN_TIMEOUT", float),
    "log_level": ("LOG_LEVEL", str),
}


def load_yaml(path: str | None) -> dict:
    """Load a YAML mapping from *path*; a missing or invalid file yields {}."""
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        logger.warning("Invalid YAML in %s, ignoring it: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _merge(*groups: tuple[str, ...]) -> tuple[str, ...]:
    """Concatenate groups in priority order, dropping repeats."""
    merged: list[str] = []
    for group in groups:
        for item in group:
            if item not in merged:
                merged.append(item)
    return tuple(merged)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logship",
        description="Ship an access log into a document store and archive old events.",
    )
    parser.add_argument(
        "inputs", nargs="*",
        help="access log paths and/or store URLs such as http://127.0.0.1:9200/logger",
    )
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--retention-days", type=int, default=None)
    parser.add_argument("--archive-dir", default=None)
    parser.add_argument("--poll-interval", type=float, default=None)
    parser.add_argument("--sweep-max-attempts", type=int, default=None)
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--create-index", action="store_true", default=None)
    parser.add_argument("--from-start", action="store_true", default=None)
    return parser


def load_config(argv: list[str] | None = None) -> Config:
    """Build Config from defaults <- YAML <- env vars <- CLI args."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    cli_sources: list[str] = []
    cli_targets: list[str] = []
    for item in args.inputs:
        if is_target(item):
            cli_targets.append(item)
        elif os.path.exists(item):
            cli_sources.append(item)
        else:
            parser.error(f"{item} is neither an existing file nor a store URL")

    file_values = load_yaml(args.config or os.environ.get("CONFIG_PATH"))

    kwargs: dict = {}
    for name, (env_name, cast) in _SETTINGS.items():
        cli_value = getattr(args, name, None)
        if cli_value is not None:
            kwargs[name] = cli_value
        elif env_name in os.environ:
            kwargs[name] = cast(os.environ[env_name])
        elif name in file_values:
            kwargs[name] = cast(file_values[name])

    configured_sources = os.environ.get("LOG_SOURCES", file_values.get("sources", ()))
    configured_targets = os.environ.get("LOG_TARGETS", file_values.get("targets", ()))
    kwargs["sources"] = _merge(tuple(cli_sources), _parse_list(configured_sources), DEFAULT_SOURCES)
    kwargs["targets"] = _merge(tuple(cli_targets), _parse_list(configured_targets), DEFAULT_TARGETS)

    return Config(**kwargs)
