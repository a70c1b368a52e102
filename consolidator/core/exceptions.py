# consolidator/core/exceptions.py

from typing import Optional


class ConsolidatorException(Exception):
    """Base class for custom exceptions in this application."""
    pass

class InvalidAddressError(ConsolidatorException):
    """Address failed local validation. Never reaches the network."""

    def __init__(self, address: str, role: str = "address"):
        self.address = address
        self.role = role
        super().__init__(f"Invalid {role}: {address!r}")

class InvalidSelectionError(ConsolidatorException):
    """Selection set breaks the balance rules for the chosen action."""
    pass

class NetworkError(ConsolidatorException):
    """Transport-level RPC failure. Transient."""
    pass

class RateLimitedError(NetworkError):
    """The endpoint refused the request because of rate limiting."""
    pass

class SimulationError(ConsolidatorException):
    """The ledger rejected a dry run (or preflight) of the transaction."""

    def __init__(self, message: str, instruction_index: Optional[int] = None):
        self.instruction_index = instruction_index
        super().__init__(message)

class UserRejectedError(ConsolidatorException):
    """The signer declined to sign."""
    pass

class LedgerExecutionError(ConsolidatorException):
    """Transaction landed but failed on-chain."""
    pass

class ConfirmationTimeoutError(ConsolidatorException):
    """No terminal status within the deadline. The transaction may still land."""
    pass

class BuildTransactionError(ConsolidatorException):
    """For errors during transaction construction."""
    pass

class MetadataParseError(ConsolidatorException):
    """Metadata account data is shorter than its declared layout."""
    pass

class AllCandidatesFailedError(ConsolidatorException):
    """Every alternative in a fallback list failed."""
    pass
