# consolidator/monitoring/__init__.py

from .signature_listener import SignatureListener

__all__ = [
    "SignatureListener",
]
