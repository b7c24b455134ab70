import pytest

from conftest import FailingChannel
from herald.config.config import DeliveryConfig
from herald.reminders.notification_dispatcher import Notification, NotificationDispatcher


def reminder(body: str = "🔔 Standup at 10:10") -> Notification:
    return Notification(body=body, domain="calendar", candidate_id="e1")


@pytest.mark.asyncio
async def test_delivers_to_configured_destination(channel):
    dispatcher = NotificationDispatcher(channel=channel, destination="chat-1")

    assert await dispatcher.send(reminder()) is True
    assert channel.sent == [("chat-1", "🔔 Standup at 10:10")]
    assert dispatcher.get_stats()["sent"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("destination", [None, ""])
async def test_no_destination_is_a_no_op(channel, destination):
    dispatcher = NotificationDispatcher(channel=channel, destination=destination)

    assert await dispatcher.send(reminder()) is False
    assert channel.sent == []
    assert dispatcher.get_stats()["dropped"] == 1


@pytest.mark.asyncio
async def test_no_channel_is_a_no_op():
    dispatcher = NotificationDispatcher(channel=None, destination="chat-1")

    assert dispatcher.is_configured is False
    assert await dispatcher.send(reminder()) is False


@pytest.mark.asyncio
async def test_channel_failure_is_swallowed():
    channel = FailingChannel()
    dispatcher = NotificationDispatcher(channel=channel, destination="chat-1")

    assert await dispatcher.send(reminder()) is False
    assert len(channel.attempts) == 1
    assert dispatcher.get_stats()["failed"] == 1


@pytest.mark.asyncio
async def test_retry_policy_backs_off_between_attempts():
    channel = FailingChannel(failures_before_success=2)
    delays = []

    async def record_sleep(delay):
        delays.append(delay)

    dispatcher = NotificationDispatcher(
        channel=channel,
        destination="chat-1",
        policy=DeliveryConfig(retry_count=3, backoff_seconds=1.0, backoff_multiplier=2.0),
        sleep=record_sleep,
    )

    assert await dispatcher.send(reminder()) is True
    assert len(channel.attempts) == 3
    assert delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_retries_exhausted_reports_failure():
    channel = FailingChannel()

    async def no_wait(delay):
        return None

    dispatcher = NotificationDispatcher(
        channel=channel,
        destination="chat-1",
        policy=DeliveryConfig(retry_count=2),
        sleep=no_wait,
    )

    assert await dispatcher.send(reminder()) is False
    assert len(channel.attempts) == 3


@pytest.mark.asyncio
async def test_listeners_see_successful_deliveries_only(channel):
    seen = []
    dispatcher = NotificationDispatcher(channel=channel, destination="chat-1")
    dispatcher.add_listener(lambda destination, notification: seen.append((destination, notification.domain)))

    await dispatcher.send(reminder())
    await dispatcher.send_text("<b>Daily Briefing</b>", domain="briefing")

    failing = NotificationDispatcher(channel=FailingChannel(), destination="chat-1")
    failing.add_listener(lambda destination, notification: seen.append(("failing", notification.domain)))
    await failing.send(reminder())

    assert seen == [("chat-1", "calendar"), ("chat-1", "briefing")]


@pytest.mark.asyncio
async def test_broken_listener_does_not_fail_the_send(channel):
    dispatcher = NotificationDispatcher(channel=channel, destination="chat-1")

    def broken(destination, notification):
        raise RuntimeError("listener bug")

    dispatcher.add_listener(broken)

    assert await dispatcher.send(reminder()) is True
