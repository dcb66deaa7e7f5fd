"""
JSON file persistence for change feed positions.

The processor never persists checkpoints itself; callers do so from their
progress handler. JsonPositionStore covers the common case:

    store = JsonPositionStore("checkpoints/orders.json")
    start = await store.load()
    config = ProcessorConfig(starting_position=start or BEGINNING)
    await run(endpoint, config, handler, store.progress_handler(report))
"""

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from changefeed.aggregator import ProgressHandler
from changefeed.position import ChangefeedPosition
from core.errors import PermanentError

logger = logging.getLogger(__name__)


class JsonPositionStore:
    """Local JSON file holding the last reported ChangefeedPosition.

    Uses atomic write pattern (write to temp file, then os.replace).
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> ChangefeedPosition | None:
        """Load the saved position, or None if no checkpoint exists.

        Raises:
            PermanentError: The file exists but is not a valid checkpoint
        """
        if not self._path.exists():
            logger.info("No checkpoint file found", extra={"path": str(self._path)})
            return None

        async with self._lock:
            try:
                with open(self._path) as f:
                    data = json.load(f)
                position = ChangefeedPosition.from_dict(data)
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise PermanentError(
                    f"Invalid checkpoint file {self._path}: {e}",
                    cause=e,
                    context={"path": str(self._path)},
                ) from e

        logger.info(
            "Loaded checkpoint",
            extra={"path": str(self._path), "position_partitions": len(position)},
        )
        return position

    async def save(self, position: ChangefeedPosition) -> None:
        async with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = position.to_dict()
            payload["updated_at"] = datetime.now(UTC).isoformat()

            temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            with open(temp_path, "w") as f:
                json.dump(payload, f, indent=2)

            # Atomic replace
            os.replace(temp_path, self._path)

        logger.debug(
            "Saved checkpoint",
            extra={"path": str(self._path), "position_partitions": len(position)},
        )

    def progress_handler(
        self,
        inner: Callable[[list[Any], ChangefeedPosition], Awaitable[None]] | None = None,
    ) -> ProgressHandler:
        """Progress handler that runs inner and then saves the position.

        The position is saved only after inner succeeds.
        """

        async def handle(outputs: list[Any], position: ChangefeedPosition) -> None:
            if inner is not None:
                await inner(outputs, position)
            await self.save(position)

        return handle


__all__ = ["JsonPositionStore"]
