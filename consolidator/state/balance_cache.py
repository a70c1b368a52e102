# consolidator/state/balance_cache.py

import asyncio
import time
from dataclasses import replace
from typing import Callable, Dict, Optional

from consolidator.consolidation.base import WalletEntry
from consolidator.core.exceptions import ConsolidatorException
from consolidator.discovery.accounts import AccountDiscovery
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)


def format_last_checked(timestamp: float, now: Optional[float] = None) -> str:
    """Relative age of a refresh, e.g. ``"just now"`` or ``"3m ago"``."""
    now = time.time() if now is None else now
    seconds = max(0, int(now - timestamp))
    if seconds < 10:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return f"{seconds // 3600}h ago"


class BalanceCache:
    """
    In-memory wallet entries keyed by owner. Every write replaces the whole
    entry, so the last completed refresh wins.
    """

    def __init__(
            self,
            discovery: AccountDiscovery,
            cooldown_seconds: float = 5.0,
            debounce_seconds: float = 1.0,
            refresh_interval_seconds: float = 10.0,
            clock: Callable[[], float] = time.monotonic,
    ):
        self.discovery = discovery
        self.cooldown_seconds = cooldown_seconds
        self.debounce_seconds = debounce_seconds
        self.refresh_interval_seconds = refresh_interval_seconds
        self._clock = clock
        self._entries: Dict[str, WalletEntry] = {}
        self._last_manual_refresh: Dict[str, float] = {}
        self._debounce_tasks: Dict[str, asyncio.Task] = {}
        self._stop_event: asyncio.Event = asyncio.Event()

    def get(self, owner: str) -> Optional[WalletEntry]:
        return self._entries.get(owner)

    def invalidate(self, owner: str) -> None:
        self._entries.pop(owner, None)

    async def refresh(self, owner: str, silent: bool = False) -> Optional[WalletEntry]:
        """
        Re-scans ``owner``. A non-silent refresh marks the entry as loading and
        re-raises failures after restoring the previous data; a silent one logs
        the failure and keeps the previous entry.
        """
        previous = self._entries.get(owner)
        placeholder: Optional[WalletEntry] = None
        if not silent:
            if previous is not None:
                placeholder = replace(previous, is_loading=True)
            else:
                placeholder = WalletEntry(owner=owner, is_loading=True)
            self._entries[owner] = placeholder

        try:
            entry = await self.discovery.scan(owner)
        except ConsolidatorException as e:
            if silent:
                logger.warning(f"Background refresh of {owner} failed: {e}")
                return self._entries.get(owner)
            # A newer entry written meanwhile is kept as is
            if self._entries.get(owner) is placeholder:
                if previous is not None:
                    self._entries[owner] = replace(previous, is_loading=False)
                else:
                    self._entries.pop(owner, None)
            raise

        self._entries[owner] = entry
        return entry

    async def request_manual_refresh(self, owner: str) -> bool:
        """Returns False without refreshing while the cooldown is active."""
        now = self._clock()
        last = self._last_manual_refresh.get(owner)
        if last is not None and now - last < self.cooldown_seconds:
            logger.info(f"Refresh ignored; please wait {self.cooldown_seconds - (now - last):.1f}s")
            return False
        self._last_manual_refresh[owner] = now
        await self.refresh(owner)
        return True

    def schedule_refresh(self, owner: str) -> asyncio.Task:
        """Debounced silent refresh: triggers within the delay coalesce into one."""
        pending = self._debounce_tasks.get(owner)
        if pending is not None and not pending.done():
            pending.cancel()
        task = asyncio.ensure_future(self._debounced_refresh(owner))
        self._debounce_tasks[owner] = task
        return task

    async def _debounced_refresh(self, owner: str) -> Optional[WalletEntry]:
        await asyncio.sleep(self.debounce_seconds)
        return await self.refresh(owner, silent=True)

    async def run_periodic(self, owner: str) -> None:
        self._stop_event.clear()
        logger.info(f"Periodic refresh of {owner} every {self.refresh_interval_seconds:g}s")
        while not self._stop_event.is_set():
            await self.refresh(owner, silent=True)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.refresh_interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        if not self._stop_event.is_set():
            self._stop_event.set()
        for task in self._debounce_tasks.values():
            if not task.done():
                task.cancel()
        self._debounce_tasks.clear()
