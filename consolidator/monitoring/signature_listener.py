# consolidator/monitoring/signature_listener.py

import asyncio
import json
from typing import Optional

import websockets

from consolidator.core.client import SignatureStatus
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)


class SignatureListener:
    """
    Push confirmation channel: subscribes to a single signature via
    signatureSubscribe and returns once the cluster reports it.
    """

    def __init__(self, wss_endpoint: str, commitment: str = "confirmed"):
        self.wss_endpoint = wss_endpoint
        self.commitment = commitment
        self._ws = None

    async def wait_for_signature(self, signature: str, timeout: float) -> Optional[SignatureStatus]:
        """
        Returns the reported status, or None when ``timeout`` elapsed first.
        Connection and protocol errors propagate so the caller can fall back
        to polling.
        """
        try:
            return await asyncio.wait_for(self._listen(signature), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"No signature notification for {signature} within {timeout:.1f}s")
            return None
        finally:
            await self.stop()

    async def _listen(self, signature: str) -> SignatureStatus:
        async with websockets.connect(self.wss_endpoint) as ws:
            self._ws = ws
            await ws.send(json.dumps({
                "jsonrpc": "2.0",
                "id": 1,
                "method": "signatureSubscribe",
                "params": [signature, {"commitment": self.commitment}],
            }))
            # subscription confirmation
            ack = json.loads(await ws.recv())
            if "error" in ack:
                raise ConnectionError(f"signatureSubscribe rejected: {ack['error']}")
            logger.debug(f"Subscribed to {signature} (subscription {ack.get('result')})")

            while True:
                msg = json.loads(await ws.recv())
                if msg.get("method") != "signatureNotification":
                    continue
                value = msg.get("params", {}).get("result", {}).get("value", {})
                if not isinstance(value, dict):
                    continue
                return SignatureStatus(
                    confirmation_status=self.commitment,
                    err=value.get("err"),
                    slot=msg["params"]["result"].get("context", {}).get("slot"),
                )

    async def stop(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
