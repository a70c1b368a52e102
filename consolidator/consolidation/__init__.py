# consolidator/consolidation/__init__.py

from .base import (
    InstructionKind,
    PlannedInstruction,
    SelectionSet,
    SubmissionAttempt,
    SubmissionState,
    TokenAccount,
    TokenMetadata,
    WalletEntry,
)

__all__ = [
    "InstructionKind",
    "PlannedInstruction",
    "SelectionSet",
    "SubmissionAttempt",
    "SubmissionState",
    "TokenAccount",
    "TokenMetadata",
    "WalletEntry",
]
