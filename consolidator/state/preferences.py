# consolidator/state/preferences.py

import json
import os
from typing import Optional

from consolidator.utils.logger import get_logger
from consolidator.utils.validation import is_valid_address, require_address

logger = get_logger(__name__)

DESTINATION_KEY = "destinationWallet"
DEFAULT_PREFERENCE_PATH = os.path.join(os.path.expanduser("~"), ".consolidator", "preferences.json")


class DestinationPreference:
    """The saved destination wallet, stored as one key in a small JSON file."""

    def __init__(self, path: str = DEFAULT_PREFERENCE_PATH):
        self.path = path
        self.value: Optional[str] = None

    def load(self) -> Optional[str]:
        if not os.path.exists(self.path):
            self.value = None
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences from {self.path}: {e}")
            self.value = None
            return None
        stored = data.get(DESTINATION_KEY) if isinstance(data, dict) else None
        if stored and not is_valid_address(stored):
            logger.warning(f"Ignoring invalid saved destination {stored!r} in {self.path}")
            stored = None
        self.value = stored if isinstance(stored, str) and stored else None
        return self.value

    def set(self, address: str) -> str:
        address = require_address(address.strip(), "destination address")
        self.value = address
        self._write({DESTINATION_KEY: address})
        logger.info(f"Destination wallet set to {address}")
        return address

    def clear(self) -> None:
        self.value = None
        if os.path.exists(self.path):
            os.remove(self.path)
        logger.info("Destination wallet cleared")

    def resolve(self, connected_owner: str) -> str:
        """Saved destination, or the connected wallet itself when none is saved."""
        return self.value or connected_owner

    def _write(self, data: dict) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)
