# consolidator/core/endpoints.py

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from consolidator.core.client import SolanaClient
from consolidator.core.exceptions import ConsolidatorException
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Endpoint:
    url: str
    latency_ms: Optional[float] = None
    is_live: bool = False


class EndpointSelector:
    """Probes every configured RPC endpoint once and picks the fastest live one."""

    def __init__(self, urls: Sequence[str], client_factory: Callable[[str], SolanaClient] = SolanaClient):
        if not urls:
            raise ValueError("At least one RPC endpoint must be configured")
        self.urls = list(urls)
        self.client_factory = client_factory
        self.selected: Optional[Endpoint] = None

    async def _probe(self, url: str) -> Endpoint:
        client = self.client_factory(url)
        try:
            started = time.perf_counter()
            await client.get_slot()
            latency_ms = (time.perf_counter() - started) * 1000
            logger.debug(f"Endpoint {url} answered in {latency_ms:.0f} ms")
            return Endpoint(url=url, latency_ms=latency_ms, is_live=True)
        except ConsolidatorException as e:
            logger.warning(f"Endpoint {url} failed probe: {e}")
            return Endpoint(url=url)
        finally:
            await client.close()

    async def probe_all(self) -> List[Endpoint]:
        return list(await asyncio.gather(*[self._probe(url) for url in self.urls]))

    async def select(self) -> Endpoint:
        endpoints = await self.probe_all()
        live = [e for e in endpoints if e.is_live]
        if live:
            self.selected = min(live, key=lambda e: e.latency_ms)
            logger.info(f"Selected RPC endpoint {self.selected.url} ({self.selected.latency_ms:.0f} ms)")
        else:
            self.selected = endpoints[0]
            logger.warning(f"No RPC endpoint responded; falling back to {self.selected.url}")
        return self.selected

    async def connect(self, **client_kwargs) -> SolanaClient:
        """The shared connection handle for the chosen endpoint."""
        if self.selected is None:
            await self.select()
        return self.client_factory(self.selected.url, **client_kwargs)
