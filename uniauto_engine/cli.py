"""CLI entry point for running a test case on an automation surface."""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from uniauto_engine.config import EngineConfig
from uniauto_engine.engine import AutomationEngine
from uniauto_engine.models.result import ExecutionRecord
from uniauto_engine.models.test_case import TestCase
from uniauto_engine.stores.base import ExecutionStore
from uniauto_engine.stores.config import HttpStoreConfig
from uniauto_engine.stores.http import HttpExecutionStore
from uniauto_engine.stores.memory import InMemoryExecutionStore
from uniauto_engine.surfaces.registry import load_surface_manifest
from uniauto_engine.test_case_loader import load_test_case

STATUS_SYMBOLS = {
    "success": "✅",
    "failure": "❌",
    "skipped": "⏭️",
    "partial": "⚠️",
    "error": "❗",
}


def log_record_summary(log: logging.Logger, record: ExecutionRecord) -> None:
    """Log a formatted summary of an execution record with heal details."""
    log.info("=" * 80)
    log.info("Execution Summary: %s", record.execution_id)
    log.info("=" * 80)

    for result in record.step_results:
        symbol = STATUS_SYMBOLS.get(result.status, "?")
        log.info(
            "%s step %d %s: %s (%.2fs)",
            symbol,
            result.step_index,
            result.command,
            result.status,
            result.duration,
        )
        if result.healed_selector:
            log.info(
                "  Healed: %s -> %s (%s)",
                result.original_selector,
                result.healed_selector,
                result.strategy,
            )
        if result.error:
            log.info("  Error: %s", result.error)
        if result.screenshot:
            log.info("  Screenshot: %s", result.screenshot)

    if record.cancelled:
        log.info("Run cancelled after %d step(s)", len(record.step_results))
    log.info(
        "%s %s (%.2fs)",
        STATUS_SYMBOLS.get(record.status, "?"),
        record.status,
        record.duration,
    )


async def run(
    surface_key: str,
    surface_config_json: str,
    test_case_path: Path | None = None,
    test_case_id: str | None = None,
    engine_config_json: str = "{}",
    store_config_json: str | None = None,
) -> int:
    """Run one test case and return exit code.

    Raises:
        ValueError: If no test case source is given, or a test case id is
            given without a store to load it from

    """
    log = logging.getLogger("uniauto_engine")
    if test_case_path is None and test_case_id is None:
        raise ValueError("Either a test case path or a test case id is required")
    if test_case_path is None and not store_config_json:
        raise ValueError("A test case id can only be loaded with a store config")

    log.info("Loading surface: %s", surface_key)
    manifest = load_surface_manifest(surface_key)
    engine_config = EngineConfig(**json.loads(engine_config_json))

    async with AsyncExitStack() as stack:
        store: ExecutionStore
        if store_config_json:
            store_config = HttpStoreConfig(**json.loads(store_config_json))
            store = await stack.enter_async_context(
                HttpExecutionStore.from_config(store_config)
            )
        else:
            store = InMemoryExecutionStore()

        test_case: TestCase
        if test_case_path is not None:
            log.info("Loading test case from %s", test_case_path)
            test_case = await load_test_case(test_case_path)
        else:
            log.info("Loading test case %s from store", test_case_id)
            test_case = await store.load_test_case(str(test_case_id))

        engine = AutomationEngine.create(engine_config, store=store)
        surface = await stack.enter_async_context(manifest.open(surface_config_json))
        record = await engine.run_test_case(test_case, surface)

    log_record_summary(log, record)
    print(json.dumps(record.to_dict(), indent=2, default=str))

    return 0 if record.status == "success" else 1


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run a self-healing automation test case"
    )
    parser.add_argument(
        "--surface",
        required=True,
        help="Surface key (playwright, mock)",
    )
    parser.add_argument(
        "--surface-config",
        default="{}",
        help="JSON configuration for the surface",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--test-case",
        type=Path,
        help="Path to a YAML test case file",
    )
    source.add_argument(
        "--test-case-id",
        help="Identifier of a test case held by the execution store",
    )
    parser.add_argument(
        "--engine-config",
        default="{}",
        help="JSON configuration for the engine (timeouts, retries, eviction)",
    )
    parser.add_argument(
        "--store-config",
        default=None,
        help="JSON configuration for the HTTP execution store",
    )

    args = parser.parse_args()
    if args.test_case_id is not None and args.store_config is None:
        parser.error("--test-case-id requires --store-config")

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(
        run(
            surface_key=args.surface,
            surface_config_json=args.surface_config,
            test_case_path=args.test_case,
            test_case_id=args.test_case_id,
            engine_config_json=args.engine_config,
            store_config_json=args.store_config,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
