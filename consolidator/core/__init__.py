# consolidator/core/__init__.py

# Leaf modules only; transaction and instruction modules depend on consolidation.base
from .client import SolanaClient
from .wallet import Signer, KeypairSigner, ConfirmingSigner
from .pubkeys import SolanaProgramAddresses
from .exceptions import ConsolidatorException

__all__ = [
    "SolanaClient",
    "Signer",
    "KeypairSigner",
    "ConfirmingSigner",
    "SolanaProgramAddresses",
    "ConsolidatorException",
]
