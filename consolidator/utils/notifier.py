# consolidator/utils/notifier.py

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from consolidator.utils.logger import get_logger

notify_log = get_logger("Notifier")  # Dedicated logger instance

VARIANT_DEFAULT = "default"
VARIANT_SUCCESS = "success"
VARIANT_WARNING = "warning"
VARIANT_DESTRUCTIVE = "destructive"

DEFAULT_DURATION_SECONDS = 5.0
LONG_DURATION_SECONDS = 10.0


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    link: Optional[str] = None
    variant: str = VARIANT_DEFAULT
    duration_seconds: float = DEFAULT_DURATION_SECONDS


class Notifier:
    """
    User-facing outcome messages. Each one is logged as a JSON line,
    optionally appended to a file, and handed to an optional sink
    (the CLI prints them).
    """

    def __init__(
            self,
            log_to_file: bool = False,
            filepath: str = "notifications.log",
            sink: Optional[Callable[[Notification], None]] = None,
    ):
        self.log_to_file = log_to_file
        self.filepath = filepath
        self.sink = sink
        self.history: List[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.history.append(notification)
        entry = {"timestamp": datetime.now(timezone.utc).isoformat(), **asdict(notification)}
        log_message = json.dumps(entry)
        notify_log.info(log_message)

        if self.log_to_file:
            try:
                with open(self.filepath, "a", encoding="utf-8") as f:
                    f.write(log_message + "\n")
            except OSError as e:
                notify_log.error(f"Failed to write notification to file {self.filepath}: {e}")

        if self.sink is not None:
            self.sink(notification)
