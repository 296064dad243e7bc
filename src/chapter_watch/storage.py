"""Persistence of tracked series and host strategies in one JSON state file."""

import asyncio
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiofiles  # type: ignore[import-untyped]
from pydantic import ValidationError

from chapter_watch.models import TrackedSeries

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Abstract base class for state persistence."""

    @abstractmethod
    async def load_render_required_hosts(self) -> list[str]:
        """Return the persisted render-required host list."""

    @abstractmethod
    async def save_render_required_hosts(self, hosts: list[str]) -> None:
        """Persist the render-required host list."""

    @abstractmethod
    async def load_series(self) -> list[TrackedSeries]:
        """Return all tracked series."""

    @abstractmethod
    async def save_series(self, series: list[TrackedSeries]) -> None:
        """Persist all tracked series."""


class JsonStateStore(StateStore):
    """Keep state in a single JSON document, replaced atomically on every write.

    A missing file is an empty state. A corrupt file is logged and treated as
    empty rather than aborting the run; it is overwritten on the next save.
    Read-modify-write cycles are serialized, so concurrent saves of different
    sections never drop each other's changes.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            raw = await f.read()
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("State file %s is not valid JSON (%s); starting empty", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("State file %s has an unexpected layout; starting empty", self.path)
            return {}
        return data

    async def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
            os.replace(tmp, self.path)
        finally:
            if tmp.exists():
                tmp.unlink()

    async def _update(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._read()
            data[key] = value
            await self._write(data)

    async def load_render_required_hosts(self) -> list[str]:
        hosts = (await self._read()).get("render_required_hosts") or []
        if not isinstance(hosts, list):
            return []
        return [h for h in hosts if isinstance(h, str)]

    async def save_render_required_hosts(self, hosts: list[str]) -> None:
        await self._update("render_required_hosts", sorted(hosts))
        logger.debug("Saved %d render-required hosts to %s", len(hosts), self.path)

    async def load_series(self) -> list[TrackedSeries]:
        entries = (await self._read()).get("series") or []
        series = []
        for entry in entries if isinstance(entries, list) else []:
            try:
                series.append(TrackedSeries.model_validate(entry))
            except ValidationError as e:
                logger.warning("Skipping invalid series entry %r: %s", entry, e)
        return series

    async def save_series(self, series: list[TrackedSeries]) -> None:
        await self._update("series", [s.model_dump(mode="json") for s in series])
        logger.debug("Saved %d series to %s", len(series), self.path)
