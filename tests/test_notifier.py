import json

import pytest

from consolidator.utils.notifier import LONG_DURATION_SECONDS, VARIANT_WARNING, Notification, Notifier


@pytest.mark.asyncio
async def test_notify_records_history_and_sink():
    received = []
    notifier = Notifier(sink=received.append)
    notification = Notification(title="Accounts closed successfully", description="Closed 1 empty token account")

    await notifier.notify(notification)

    assert notifier.history == [notification]
    assert received == [notification]
    assert notification.duration_seconds == 5.0


@pytest.mark.asyncio
async def test_notify_appends_json_lines(tmp_path):
    path = tmp_path / "notifications.log"
    notifier = Notifier(log_to_file=True, filepath=str(path))

    await notifier.notify(Notification(title="One", description="first"))
    await notifier.notify(Notification(
        title="Confirmation timed out",
        description="may still land",
        link="https://solscan.io/tx/abc",
        variant=VARIANT_WARNING,
        duration_seconds=LONG_DURATION_SECONDS,
    ))

    lines = [json.loads(line) for line in path.read_text().splitlines()]
    assert [line["title"] for line in lines] == ["One", "Confirmation timed out"]
    assert lines[1]["link"] == "https://solscan.io/tx/abc"
    assert lines[1]["variant"] == "warning"
    assert "timestamp" in lines[0]


@pytest.mark.asyncio
async def test_unwritable_file_does_not_raise(tmp_path):
    notifier = Notifier(log_to_file=True, filepath=str(tmp_path / "missing" / "n.log"))
    await notifier.notify(Notification(title="x", description="y"))
    assert len(notifier.history) == 1
