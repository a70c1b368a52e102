# consolidator/discovery/__init__.py

from .accounts import AccountDiscovery, partition
from .metadata import MetadataResolver, candidate_urls, parse_metadata_account

__all__ = [
    "AccountDiscovery",
    "partition",
    "MetadataResolver",
    "candidate_urls",
    "parse_metadata_account",
]
