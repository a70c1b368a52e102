# consolidator/discovery/metadata.py

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import httpx
from borsh_construct import CStruct, U8, U32
from construct import Bytes, ConstructError
from solders.pubkey import Pubkey

from consolidator.consolidation.base import TokenMetadata
from consolidator.core.client import SolanaClient
from consolidator.core.constants import (
    ARWEAVE_GATEWAY,
    IPFS_GATEWAYS,
    METADATA_NAME_MAX_LEN,
    METADATA_SYMBOL_MAX_LEN,
    METADATA_URI_MAX_LEN,
)
from consolidator.core.exceptions import AllCandidatesFailedError, MetadataParseError
from consolidator.core.pubkeys import find_metadata_address
from consolidator.utils.fetch import fetch_json, first_available, probe_url
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)

METADATA_HEADER_LAYOUT = CStruct(
    "key" / U8,
    "update_authority" / Bytes(32),
    "mint" / Bytes(32),
)
METADATA_HEADER_LEN = METADATA_HEADER_LAYOUT.sizeof()
DEFAULT_FETCH_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class OnChainMetadata:
    name: str
    symbol: str
    uri: str


def _read_string(data: bytes, offset: int, max_len: int, field_name: str):
    if offset + 4 > len(data):
        raise MetadataParseError(f"metadata truncated before {field_name} length at offset {offset}")
    declared = U32.parse(data[offset:offset + 4])
    length = min(declared, max_len)
    offset += 4
    if offset + length > len(data):
        raise MetadataParseError(
            f"metadata {field_name} needs {length} bytes at offset {offset}, have {len(data) - offset}"
        )
    value = data[offset:offset + length].decode("utf-8", errors="replace").replace("\x00", "")
    return value.strip(), offset + length


def parse_metadata_account(data: bytes) -> OnChainMetadata:
    """
    Decodes name, symbol and URI from a token-metadata account. Declared
    string lengths are clamped to the field maxima.
    """
    try:
        METADATA_HEADER_LAYOUT.parse(data)
    except ConstructError as e:
        raise MetadataParseError(f"metadata header truncated (length {len(data)}): {e}") from e
    offset = METADATA_HEADER_LEN
    name, offset = _read_string(data, offset, METADATA_NAME_MAX_LEN, "name")
    symbol, offset = _read_string(data, offset, METADATA_SYMBOL_MAX_LEN, "symbol")
    uri, _ = _read_string(data, offset, METADATA_URI_MAX_LEN, "uri")
    return OnChainMetadata(name=name, symbol=symbol, uri=uri)


def _looks_like_cid(value: str) -> bool:
    return value.startswith("Qm") or value.startswith("bafy")


def candidate_urls(uri: str, gateways: Sequence[str] = IPFS_GATEWAYS) -> List[str]:
    """Expands a metadata or image URI into the URLs worth trying, in order."""
    uri = (uri or "").strip()
    if not uri:
        return []
    if uri.startswith("ar://"):
        return [f"{ARWEAVE_GATEWAY}{uri[len('ar://'):]}"]

    # A bare CID is expanded too
    ipfs_hash = uri
    if uri.startswith("ipfs://"):
        ipfs_hash = uri[len("ipfs://"):]
    elif "/ipfs/" in uri:
        ipfs_hash = uri.split("/ipfs/", 1)[1]

    if ipfs_hash and _looks_like_cid(ipfs_hash):
        return [f"{gateway}{ipfs_hash}" for gateway in gateways]
    return [uri]


class MetadataResolver:
    """
    Resolves display metadata per mint: on-chain name/symbol/URI, then the
    off-chain JSON document behind the URI. Results are cached for the session.
    """

    def __init__(
            self,
            client: SolanaClient,
            http_client: Optional[httpx.AsyncClient] = None,
            gateways: Sequence[str] = IPFS_GATEWAYS,
            probe_images: bool = False,
            timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.gateways = list(gateways)
        self.probe_images = probe_images
        self.timeout_seconds = timeout_seconds
        self._http = http_client
        self._owns_http = http_client is None
        self._cache: Dict[str, Optional[TokenMetadata]] = {}

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    @staticmethod
    def metadata_address(mint: str) -> Pubkey:
        return find_metadata_address(Pubkey.from_string(mint))

    def cached(self, mint: str) -> Optional[TokenMetadata]:
        return self._cache.get(mint)

    async def resolve(self, mint: str) -> Optional[TokenMetadata]:
        """Never raises: any failure yields None and is logged."""
        if mint in self._cache:
            return self._cache[mint]
        try:
            metadata = await self._resolve(mint)
        except Exception as e:
            logger.warning(f"Metadata for {mint} unavailable: {type(e).__name__} - {e}")
            metadata = None
        self._cache[mint] = metadata
        return metadata

    async def _resolve(self, mint: str) -> Optional[TokenMetadata]:
        account = await self.client.get_account_info(self.metadata_address(mint))
        if account is None:
            logger.debug(f"No metadata account for {mint}")
            return None
        on_chain = parse_metadata_account(account.data)

        document = await self.fetch_document(on_chain.uri) if on_chain.uri else None
        document = document if isinstance(document, dict) else {}

        image_candidates: List[str] = []
        raw_image = document.get("image")
        if isinstance(raw_image, str) and raw_image:
            image_candidates = candidate_urls(raw_image, self.gateways)

        image_url = image_candidates[0] if image_candidates else None
        if self.probe_images and image_candidates:
            image_url = await self.probe_image(image_candidates)

        return TokenMetadata(
            mint=mint,
            name=document.get("name") or on_chain.name or None,
            symbol=document.get("symbol") or on_chain.symbol or None,
            image_url=image_url,
            candidate_image_urls=tuple(image_candidates),
        )

    async def fetch_document(self, uri: str) -> Optional[dict]:
        http = self._http_client()
        try:
            return await first_available(
                candidate_urls(uri, self.gateways),
                lambda url: fetch_json(http, url),
                label=f"metadata {uri}",
            )
        except AllCandidatesFailedError as e:
            logger.info(f"Off-chain metadata not reachable: {e}")
            return None

    async def probe_image(self, candidates: Sequence[str]) -> Optional[str]:
        """First image URL that answers, or None."""
        http = self._http_client()
        try:
            return await first_available(candidates, lambda url: probe_url(http, url), label="image")
        except AllCandidatesFailedError as e:
            logger.debug(str(e))
            return None
