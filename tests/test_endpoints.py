import asyncio

import pytest

from consolidator.core.endpoints import EndpointSelector
from consolidator.core.exceptions import NetworkError, RateLimitedError

SLOW = "https://slow.example"
FAST = "https://fast.example"
DOWN = "https://down.example"


class ProbeClient:
    delays = {SLOW: 0.4, FAST: 0.12}
    created = []

    def __init__(self, url, **kwargs):
        self.rpc_endpoint = url
        self.kwargs = kwargs
        self.closed = False
        ProbeClient.created.append(self)

    async def get_slot(self):
        if self.rpc_endpoint not in self.delays:
            raise NetworkError(f"get_slot: ConnectError ({self.rpc_endpoint})")
        await asyncio.sleep(self.delays[self.rpc_endpoint])
        return 250_000_000

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_clients():
    ProbeClient.created = []


@pytest.mark.asyncio
async def test_fastest_live_endpoint_is_selected():
    selector = EndpointSelector([SLOW, FAST], client_factory=ProbeClient)
    endpoint = await selector.select()

    assert endpoint.url == FAST
    assert endpoint.is_live
    assert 100 <= endpoint.latency_ms < 400
    assert all(client.closed for client in ProbeClient.created)


@pytest.mark.asyncio
async def test_probes_run_concurrently():
    loop = asyncio.get_running_loop()
    started = loop.time()
    await EndpointSelector([SLOW, FAST], client_factory=ProbeClient).probe_all()
    assert loop.time() - started < 0.5


@pytest.mark.asyncio
async def test_dead_endpoints_are_ignored():
    endpoint = await EndpointSelector([DOWN, SLOW], client_factory=ProbeClient).select()
    assert endpoint.url == SLOW


@pytest.mark.asyncio
async def test_falls_back_to_first_when_none_respond():
    class RateLimited(ProbeClient):
        async def get_slot(self):
            raise RateLimitedError("get_slot: rate limited (HTTP 429)")

    endpoint = await EndpointSelector([DOWN, SLOW], client_factory=RateLimited).select()
    assert endpoint.url == DOWN
    assert not endpoint.is_live


@pytest.mark.asyncio
async def test_connect_returns_client_for_selected_endpoint():
    selector = EndpointSelector([SLOW, FAST], client_factory=ProbeClient)
    client = await selector.connect()
    assert client.rpc_endpoint == FAST
    assert not client.closed


def test_requires_at_least_one_endpoint():
    with pytest.raises(ValueError):
        EndpointSelector([])
