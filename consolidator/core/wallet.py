# consolidator/core/wallet.py

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Union

import base58
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from consolidator.core.exceptions import UserRejectedError
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)

ConfirmPrompt = Callable[[str], Union[bool, Awaitable[bool]]]


class Signer(ABC):
    """Signing capability. Implementations may refuse with UserRejectedError."""

    @property
    @abstractmethod
    def pubkey(self) -> Pubkey:
        pass

    @property
    def address(self) -> str:
        return str(self.pubkey)

    @abstractmethod
    async def sign_transaction(self, message: MessageV0) -> VersionedTransaction:
        pass


class KeypairSigner(Signer):
    """ Signs with a local keypair loaded from a base58 secret. """

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @classmethod
    def from_base58(cls, private_key_bs58: str) -> "KeypairSigner":
        try:
            private_key_bytes: bytes = base58.b58decode(private_key_bs58.strip())
            keypair = Keypair.from_bytes(private_key_bytes)
        except ValueError as e:
            logger.error(f"Invalid base58 private key provided: {e}")
            raise ValueError("Invalid private key format") from e
        except Exception as e:
            logger.error(f"Error initializing Keypair from private key: {e}", exc_info=True)
            raise ValueError("Failed to create Keypair") from e
        logger.info(f"Signer initialized for pubkey: {keypair.pubkey()}")
        return cls(keypair)

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def sign_transaction(self, message: MessageV0) -> VersionedTransaction:
        return VersionedTransaction(message, [self.keypair])


class ConfirmingSigner(Signer):
    """
    Wraps another signer and asks for approval before every signature.
    A negative answer is reported as UserRejectedError.
    """

    def __init__(self, inner: Signer, prompt: ConfirmPrompt):
        self.inner = inner
        self.prompt = prompt

    @property
    def pubkey(self) -> Pubkey:
        return self.inner.pubkey

    async def sign_transaction(self, message: MessageV0) -> VersionedTransaction:
        summary = (
            f"Sign transaction with {len(message.instructions)} instruction(s) "
            f"as {self.inner.address}?"
        )
        answer = self.prompt(summary)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            logger.info("Signature request declined.")
            raise UserRejectedError("Transaction rejected by user")
        return await self.inner.sign_transaction(message)


def console_prompt(summary: str) -> Awaitable[bool]:
    """Asks on stdin without blocking the event loop."""

    def _ask() -> bool:
        reply = input(f"{summary} [y/N] ")
        return reply.strip().lower() in ("y", "yes")

    return asyncio.to_thread(_ask)
