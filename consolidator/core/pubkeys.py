# consolidator/core/pubkeys.py

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID_SOLDERS  # Renamed to avoid conflict
from spl.token.constants import TOKEN_PROGRAM_ID as TOKEN_PROGRAM_ID_SPL  # Renamed to avoid conflict
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID as ASSOCIATED_TOKEN_PROGRAM_ID_SPL


class SolanaProgramAddresses:
    SYSTEM_PROGRAM_ID: Pubkey = SYSTEM_PROGRAM_ID_SOLDERS
    TOKEN_PROGRAM_ID: Pubkey = TOKEN_PROGRAM_ID_SPL
    ASSOCIATED_TOKEN_ACCOUNT_PROGRAM_ID: Pubkey = ASSOCIATED_TOKEN_PROGRAM_ID_SPL
    TOKEN_METADATA_PROGRAM_ID: Pubkey = Pubkey.from_string(
        "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
    )


def find_metadata_address(mint: Pubkey) -> Pubkey:
    """PDA of the token-metadata account for ``mint`` (seed = b"metadata")."""
    pda, _bump = Pubkey.find_program_address(
        [
            b"metadata",
            bytes(SolanaProgramAddresses.TOKEN_METADATA_PROGRAM_ID),
            bytes(mint),
        ],
        SolanaProgramAddresses.TOKEN_METADATA_PROGRAM_ID,
    )
    return pda


# for convenience, re-export the token program ID at module scope
TOKEN_PROGRAM_ID = SolanaProgramAddresses.TOKEN_PROGRAM_ID
