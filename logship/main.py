"""Entry point: pick a source and a target, check the index, then ship until stopped."""

import logging
import os
import signal
import sys
import threading

from logship.codec import validate_source
from logship.config import Config, load_config
from logship.coordinator import IngestionCoordinator
from logship.errors import InvalidTargetError, SchemaMismatchError, StoreError
from logship.metrics import PipelineMetrics
from logship.schema import SchemaVerdict, check_remote_schema, check_schema, index_mapping
from logship.store import DocumentStore, is_reachable
from logship.target import Target, parse_target

logger = logging.getLogger(__name__)


def choose_source(config: Config) -> str | None:
    """First candidate file that exists and samples as an access log."""
    for path in config.sources:
        if not os.path.isfile(path):
            logger.info("Source %s does not exist, skipping", path)
            continue
        try:
            verdict = validate_source(path, config.sample_size, config.confidence_threshold)
        except OSError as exc:
            logger.warning("Source %s cannot be read: %s", path, exc)
            continue
        if verdict.ok:
            return path
        logger.warning(
            "Source %s rejected: %s (%.0f%% of %d sampled line(s) parsed)",
            path, verdict.status.value, verdict.ratio * 100, verdict.sampled,
        )
    return None


def choose_target(config: Config) -> tuple[Target, DocumentStore] | None:
    """First candidate target that parses and answers a health check."""
    for descriptor in config.targets:
        try:
            target = parse_target(descriptor)
        except InvalidTargetError as exc:
            logger.warning("Skipping target: %s", exc)
            continue
        store = target.connect()
        if is_reachable(store):
            return target, store
        logger.warning("Target %s is not reachable", target)
    return None


def prepare_index(store: DocumentStore, index: str, create: bool) -> bool:
    """Make sure *index* exists with a compatible mapping."""
    try:
        verdict = check_remote_schema(store, index)
        if verdict is SchemaVerdict.MISSING:
            if not create:
                logger.error("Index %s does not exist; rerun with --create-index to create it", index)
                return False
            store.create_index(index, index_mapping())
            return True
    except StoreError as exc:
        logger.error("Could not prepare index %s: %s", index, exc)
        return False

    if verdict is SchemaVerdict.INCOMPATIBLE:
        logger.error("Index %s has an incompatible mapping", index)
        return False
    return True


def main(argv: list[str] | None = None) -> int:
    config = load_config(argv)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        check_schema()
    except SchemaMismatchError as exc:
        logger.error("Event model and index mapping disagree: %s", exc)
        return 1

    source = choose_source(config)
    if source is None:
        logger.error("No usable access log among: %s", ", ".join(config.sources))
        return 1

    chosen = choose_target(config)
    if chosen is None:
        logger.error("No reachable store among: %s", ", ".join(config.targets))
        return 1
    target, store = chosen

    if not prepare_index(store, target.index, config.create_index):
        return 1

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    metrics = PipelineMetrics()
    coordinator = IngestionCoordinator(
        config, store, target.index, store_factory=target.connect, metrics=metrics,
    )
    logger.info(
        "Shipping %s -> %s (batch=%d, retention=%d days, archive=%s)",
        source, target, config.batch_size, config.retention_days, config.archive_dir,
    )

    try:
        coordinator.run(source, shutdown_event)
    finally:
        coordinator.close()
        if not coordinator.wait_for_sweep(config.shutdown_timeout):
            logger.warning(
                "Retention sweep still running after %.0fs, exiting without it",
                config.shutdown_timeout,
            )
        logger.info("Metrics: %s", metrics.snapshot())
    return 0


if __name__ == "__main__":
    sys.exit(main())
