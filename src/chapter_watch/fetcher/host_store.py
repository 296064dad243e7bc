"""Per-host memory of which fetch tier a site requires."""

import logging
from collections.abc import Iterable
from enum import Enum
from typing import Protocol

from chapter_watch.utils.url_utils import normalize_host

logger = logging.getLogger(__name__)


class HostStrategy(str, Enum):
    DIRECT = "direct"
    RENDER_REQUIRED = "render-required"


class HostListPersistence(Protocol):
    """Where the render-required host list is kept between runs."""

    async def save_render_required_hosts(self, hosts: list[str]) -> None: ...


class HostStrategyStore:
    """Remember hosts that only yield content through the render tier.

    Escalation is one-way: a host marked render-required stays that way,
    since sites' defenses don't reliably get weaker. Hosts are keyed by
    :func:`normalize_host`.
    """

    def __init__(self, persistence: HostListPersistence | None = None):
        self._persistence = persistence
        self._render_required: set[str] = set()

    def load_from_persisted_list(self, hosts: Iterable[str] | None) -> None:
        """Rehydrate from a persisted list, dropping blanks and duplicates."""
        self._render_required.clear()
        for raw in hosts or ():
            if not isinstance(raw, str):
                continue
            host = normalize_host(raw)
            if not host or any(c.isspace() for c in host) or "/" in host:
                logger.debug("Ignoring invalid persisted host entry %r", raw)
                continue
            self._render_required.add(host)

    def strategy_for(self, host: str) -> HostStrategy:
        if self.is_render_required(host):
            return HostStrategy.RENDER_REQUIRED
        return HostStrategy.DIRECT

    def is_render_required(self, host: str) -> bool:
        key = normalize_host(host)
        return bool(key) and key in self._render_required

    async def mark_render_required(self, host: str) -> bool:
        """Tag ``host`` as render-required and persist. Returns True if it changed."""
        key = normalize_host(host)
        if not key or key in self._render_required:
            return False
        self._render_required.add(key)
        logger.info("Host marked render-required: %s", key)
        await self.flush()
        return True

    async def forget(self, host: str) -> bool:
        """Drop a host back to direct fetching on explicit user request."""
        key = normalize_host(host)
        if key not in self._render_required:
            return False
        self._render_required.discard(key)
        logger.info("Host reset to direct: %s", key)
        await self.flush()
        return True

    def hosts(self) -> list[str]:
        return sorted(self._render_required)

    async def flush(self) -> None:
        """Write the current host list through the persistence collaborator."""
        if self._persistence is not None:
            await self._persistence.save_render_required_hosts(self.hosts())
