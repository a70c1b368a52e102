# consolidator/discovery/accounts.py
"""
Token account discovery for one owner wallet.
"""

import asyncio
import time
from typing import Dict, List, Optional, Sequence, Tuple

from consolidator.consolidation.base import TokenAccount, TokenMetadata, WalletEntry
from consolidator.core.client import SolanaClient
from consolidator.discovery.metadata import MetadataResolver
from consolidator.utils.logger import get_logger
from consolidator.utils.validation import require_address

logger = get_logger(__name__)


def partition(accounts: Sequence[TokenAccount]) -> Tuple[List[TokenAccount], List[TokenAccount]]:
    """Splits accounts into (with balance, empty)."""
    with_balance = [a for a in accounts if a.raw_amount > 0]
    empty = [a for a in accounts if a.raw_amount == 0]
    return with_balance, empty


class AccountDiscovery:
    def __init__(self, client: SolanaClient, metadata_resolver: Optional[MetadataResolver] = None):
        self.client = client
        self.metadata_resolver = metadata_resolver

    async def discover(self, owner: str) -> List[TokenAccount]:
        """
        Lists every token-program account owned by ``owner``.

        Raises:
            InvalidAddressError: owner is not a base-58 address (no RPC call is made).
            NetworkError: the listing failed.
        """
        require_address(owner, "owner address")
        parsed = await self.client.get_token_accounts_by_owner(owner)

        metadata: Dict[str, Optional[TokenMetadata]] = {}
        if self.metadata_resolver is not None and parsed:
            mints = sorted({p.mint for p in parsed})
            resolved = await asyncio.gather(*[self.metadata_resolver.resolve(m) for m in mints])
            metadata = dict(zip(mints, resolved))

        accounts = [
            TokenAccount(
                owner=owner,
                address=p.address,
                mint=p.mint,
                raw_amount=p.amount,
                decimals=p.decimals,
                metadata=metadata.get(p.mint),
            )
            for p in parsed
        ]
        accounts.sort(key=lambda a: a.address)
        with_balance, empty = partition(accounts)
        logger.info(
            f"Found {len(accounts)} token account(s) for {owner}: "
            f"{len(with_balance)} with balance, {len(empty)} empty"
        )
        return accounts

    async def scan(self, owner: str) -> WalletEntry:
        """Native balance and token accounts, read concurrently."""
        require_address(owner, "owner address")
        sol_lamports, tokens = await asyncio.gather(
            self.client.get_balance(owner),
            self.discover(owner),
        )
        return WalletEntry(
            owner=owner,
            sol_lamports=sol_lamports,
            tokens=tuple(tokens),
            is_loading=False,
            last_refreshed=time.time(),
        )

    partition = staticmethod(partition)
