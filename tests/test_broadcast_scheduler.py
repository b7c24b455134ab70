import random

import pytest

from conftest import FailingChannel
from herald.broadcast.broadcast_scheduler import BroadcastScheduler
from herald.config.config import BroadcastConfig
from herald.sources.memory import DestinationRegistry


CONTENT = ["<b>Did you know?</b> Octopuses have three hearts."]


def make_scheduler(destinations, channel, clock, **kwargs) -> BroadcastScheduler:
    options = dict(
        content_pool=CONTENT,
        startup_delay=60,
        base_interval=100,
        jitter_max=0,
        per_destination_delay=5,
        rng=random.Random(7),
        sleep=clock.sleep,
    )
    options.update(kwargs)
    return BroadcastScheduler(lambda: list(destinations), channel, **options)


def test_next_delay_stays_within_jitter_bounds():
    scheduler = BroadcastScheduler(
        list_destinations=list,
        channel=None,
        content_pool=CONTENT,
        base_interval=6 * 3600,
        jitter_max=3600,
        rng=random.Random(1234),
    )

    delays = [scheduler.compute_next_delay() for _ in range(10_000)]

    assert min(delays) >= 6 * 3600
    assert max(delays) <= 7 * 3600
    # Draws should spread over the jitter range, not cluster at one end
    assert max(delays) - min(delays) > 3000


def test_zero_jitter_gives_the_base_interval():
    scheduler = BroadcastScheduler(list, None, CONTENT, base_interval=100, jitter_max=0)

    assert scheduler.compute_next_delay() == 100


@pytest.mark.parametrize("base, jitter", [(0, 10), (-5, 10), (100, -1)])
def test_invalid_interval_settings_are_rejected(base, jitter):
    with pytest.raises(ValueError):
        BroadcastScheduler(list, None, CONTENT, base_interval=base, jitter_max=jitter)


@pytest.mark.asyncio
async def test_cycle_without_destinations_sends_nothing(channel, clock):
    scheduler = make_scheduler([], channel, clock)

    result = await scheduler.run_cycle()

    assert result.content is None
    assert channel.sent == []
    assert scheduler.state.cycles == 1


@pytest.mark.asyncio
async def test_cycle_with_empty_pool_sends_nothing(channel, clock):
    scheduler = make_scheduler(["g1"], channel, clock, content_pool=[])

    result = await scheduler.run_cycle()

    assert result.content is None
    assert channel.sent == []


@pytest.mark.asyncio
async def test_cycle_sends_same_item_to_every_destination_with_pauses(channel, clock):
    pauses = []

    async def record_sleep(delay):
        pauses.append((delay, len(channel.sent)))

    scheduler = make_scheduler(["g1", "g2", "g3"], channel, clock, sleep=record_sleep)

    result = await scheduler.run_cycle()

    assert [destination for destination, _ in channel.sent] == ["g1", "g2", "g3"]
    assert {text for _, text in channel.sent} == {CONTENT[0]}
    assert result.delivered == ["g1", "g2", "g3"]
    # One pause between consecutive sends, none before the first
    assert pauses == [(5, 1), (5, 2)]


@pytest.mark.asyncio
async def test_duplicate_destinations_receive_one_copy(channel, clock):
    scheduler = make_scheduler(["g1", "g1", "g2"], channel, clock, per_destination_delay=0)

    await scheduler.run_cycle()

    assert [destination for destination, _ in channel.sent] == ["g1", "g2"]


@pytest.mark.asyncio
async def test_failing_destination_does_not_abort_the_cycle(clock):
    channel = FailingChannel(failing={"g2"})
    scheduler = make_scheduler(["g1", "g2", "g3"], channel, clock, per_destination_delay=0)

    result = await scheduler.run_cycle()

    assert result.delivered == ["g1", "g3"]
    assert result.failed == ["g2"]
    assert result.evicted == []


@pytest.mark.asyncio
async def test_destination_is_evicted_after_consecutive_failures(clock):
    registry = DestinationRegistry(["g1", "g2"])
    channel = FailingChannel(failing={"g2"})
    scheduler = BroadcastScheduler(
        list_destinations=registry.list_destinations,
        channel=channel,
        content_pool=CONTENT,
        per_destination_delay=0,
        max_consecutive_failures=2,
        on_evict=registry.discard,
        sleep=clock.sleep,
    )

    first = await scheduler.run_cycle()
    second = await scheduler.run_cycle()
    third = await scheduler.run_cycle()

    assert first.evicted == []
    assert second.evicted == ["g2"]
    assert registry.list_destinations() == ["g1"]
    assert third.failed == []
    assert third.delivered == ["g1"]


@pytest.mark.asyncio
async def test_rediscovered_destination_is_admitted_again(clock):
    registry = DestinationRegistry(["g1", "g2"])
    channel = FailingChannel(failing={"g2"})
    scheduler = BroadcastScheduler(
        list_destinations=registry.list_destinations,
        channel=channel,
        content_pool=CONTENT,
        per_destination_delay=0,
        max_consecutive_failures=1,
        on_evict=registry.discard,
        sleep=clock.sleep,
    )

    evicting = await scheduler.run_cycle()
    assert evicting.evicted == ["g2"]
    assert registry.list_destinations() == ["g1"]

    channel.failing = set()
    assert registry.track("g2") is True
    result = await scheduler.run_cycle()

    assert result.delivered == ["g1", "g2"]
    assert scheduler.get_stats()["evicted"] == []


@pytest.mark.asyncio
async def test_evicted_destination_stays_filtered_while_still_listed(clock):
    channel = FailingChannel(failing={"g2"})
    scheduler = make_scheduler(["g1", "g2"], channel, clock, per_destination_delay=0, max_consecutive_failures=1)

    await scheduler.run_cycle()
    channel.failing = set()
    result = await scheduler.run_cycle()

    assert result.delivered == ["g1"]
    assert scheduler.get_stats()["evicted"] == ["g2"]


@pytest.mark.asyncio
async def test_evicted_destination_dropped_by_lister_is_forgotten(clock):
    destinations = ["g1", "g2"]
    channel = FailingChannel(failing={"g2"})
    scheduler = make_scheduler(destinations, channel, clock, per_destination_delay=0, max_consecutive_failures=1)

    await scheduler.run_cycle()
    destinations.remove("g2")
    await scheduler.run_cycle()
    assert scheduler.get_stats()["evicted"] == []

    channel.failing = set()
    destinations.append("g2")
    result = await scheduler.run_cycle()

    assert result.delivered == ["g1", "g2"]


@pytest.mark.asyncio
async def test_success_resets_the_failure_count(clock):
    outcomes = iter([True, False, True, False, True])

    class Intermittent:
        async def send(self, destination, text):
            if next(outcomes):
                raise ConnectionError("flaky")

    scheduler = make_scheduler(["g1"], Intermittent(), clock, max_consecutive_failures=2)

    for _ in range(5):
        result = await scheduler.run_cycle()
        assert result.evicted == []


@pytest.mark.asyncio
async def test_eviction_disabled_keeps_failing_destination(clock):
    channel = FailingChannel()
    scheduler = make_scheduler(["g1"], channel, clock, max_consecutive_failures=None)

    for _ in range(10):
        await scheduler.run_cycle()

    assert len(channel.attempts) == 10


@pytest.mark.asyncio
async def test_loop_waits_startup_delay_then_cycles(channel, clock):
    scheduler = make_scheduler(["g1"], channel, clock)

    await scheduler.start()
    await clock.advance(59)
    assert channel.sent == []

    await clock.advance(1)
    assert len(channel.sent) == 1

    await clock.advance(99)
    assert len(channel.sent) == 1

    await clock.advance(1)
    assert len(channel.sent) == 2
    assert scheduler.state.next_delay == 100

    await scheduler.stop()


@pytest.mark.asyncio
async def test_loop_picks_up_destinations_discovered_later(channel, clock):
    destinations = []
    scheduler = BroadcastScheduler(
        lambda: list(destinations), channel, CONTENT,
        startup_delay=10, base_interval=100, jitter_max=0, sleep=clock.sleep,
    )

    await scheduler.start()
    await clock.advance(10)
    assert channel.sent == []

    destinations.append("g-new")
    await clock.advance(100)
    assert channel.sent == [("g-new", CONTENT[0])]

    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_halts_the_loop(channel, clock):
    scheduler = make_scheduler(["g1"], channel, clock)

    await scheduler.start()
    await clock.advance(60)
    assert scheduler.is_running

    await scheduler.stop()
    await clock.advance(10_000)

    assert not scheduler.is_running
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_from_config_copies_timing(channel, clock):
    config = BroadcastConfig(
        enabled=True,
        startup_delay_seconds=5,
        base_interval_seconds=50,
        jitter_max_seconds=10,
        per_destination_delay_seconds=1,
        max_consecutive_failures=4,
        content=["hello"],
    )

    scheduler = BroadcastScheduler.from_config(config, list, channel, sleep=clock.sleep)

    assert scheduler.startup_delay == 5
    assert scheduler.base_interval == 50
    assert scheduler.jitter_max == 10
    assert scheduler.per_destination_delay == 1
    assert scheduler.max_consecutive_failures == 4
    assert scheduler.content_pool == ["hello"]
