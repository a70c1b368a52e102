# consolidator/__init__.py
"""Consolidates SPL token accounts of a Solana wallet into one destination."""

__version__ = "0.1.0"
