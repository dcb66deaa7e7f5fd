#!/usr/bin/env python3
"""
Example: process a Cosmos DB change feed with a local JSON checkpoint.

Reads settings from examples/changefeed.yaml (values may reference
environment variables or a .env file), resumes from the saved checkpoint
if there is one, and prints each progress window.

Usage:
    COSMOS_URI=https://myaccount.documents.azure.com:443/ \
    COSMOS_AUTH_KEY=... \
    python examples/process_changefeed.py
"""

import asyncio
import dataclasses
import logging
from pathlib import Path

from changefeed import BEGINNING, JsonPositionStore, load_config, run
from core.logging import setup_logging

HERE = Path(__file__).parent


async def handle(document: dict) -> str:
    return document.get("id", "<no id>")


async def report(outputs: list[str], position) -> None:
    print(f"Processed {len(outputs)} documents; checkpoint {position!r}")


async def main() -> None:
    logger = setup_logging("changefeed", log_to_stdout=True, json_format=False, file_level=logging.INFO)

    endpoint, config = load_config(HERE / "changefeed.yaml", env_file=HERE / ".env")
    checkpoints = JsonPositionStore(HERE / "checkpoints" / f"{endpoint.collection_name}.json")

    saved = await checkpoints.load()
    if saved is not None:
        config = dataclasses.replace(config, starting_position=saved)
    elif config.starting_position is not BEGINNING:
        logger.info("No saved checkpoint, using configured starting position")

    result = await run(endpoint, config, handle, checkpoints.progress_handler(report))

    print(f"Finished ({result.completed_by}); {len(result.failures)} partition(s) failed")
    for partition_id, error in result.failures.items():
        print(f"  {partition_id}: {error}")


if __name__ == "__main__":
    asyncio.run(main())
