"""Tests for the viewer-side position watcher."""

import asyncio
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest

from livetrip.settings import TrackingSettings
from livetrip.tracking.broadcaster import StopReason
from livetrip.tracking.position import Position
from livetrip.tracking.watcher import LiveUpdate, PositionWatcher, UpdateKind
from tests.fakes import (
    InMemoryDistributionPoint,
    PushDistributionPoint,
    make_position,
    wait_until,
)


class BrokenPushDistributionPoint(PushDistributionPoint):
    async def subscribe(self, trip_id: str) -> AsyncIterator[Position]:
        raise ConnectionError("pub/sub unavailable")
        yield  # pragma: no cover


def make_watcher(settings, distribution, authorized=True, mode="auto", role="rider"):
    return PositionWatcher(
        trip_id="trip-1",
        distribution=distribution,
        still_authorized=AsyncMock(return_value=authorized),
        settings=settings,
        role=role,
        mode=mode,
    )


async def next_update(watcher: PositionWatcher) -> LiveUpdate:
    return await asyncio.wait_for(watcher.__anext__(), timeout=2)


@pytest.mark.unit
class TestPollingWatcher:
    """Viewer on a distribution point without push delivery."""

    @pytest.mark.asyncio
    async def test_awaiting_then_position(self, fast_settings):
        distribution = InMemoryDistributionPoint()
        watcher = make_watcher(fast_settings, distribution)
        watcher.start()

        first = await next_update(watcher)
        assert first.kind == UpdateKind.AWAITING_POSITION
        assert first.position is None

        await distribution.publish("trip-1", make_position(1))
        second = await next_update(watcher)
        assert second.kind == UpdateKind.POSITION
        assert second.position == make_position(1)

        await watcher.stop()

    @pytest.mark.asyncio
    async def test_unchanged_value_is_not_repeated(self, fast_settings):
        distribution = InMemoryDistributionPoint()
        await distribution.publish("trip-1", make_position(1))
        watcher = make_watcher(fast_settings, distribution)
        watcher.start()

        assert (await next_update(watcher)).position == make_position(1)
        await asyncio.sleep(fast_settings.poll_interval_seconds * 5)
        await distribution.publish("trip-1", make_position(2))
        assert (await next_update(watcher)).position == make_position(2)

        await watcher.stop()

    @pytest.mark.asyncio
    async def test_stop_ends_iteration(self, fast_settings):
        distribution = InMemoryDistributionPoint()
        await distribution.publish("trip-1", make_position(1))
        watcher = make_watcher(fast_settings, distribution)
        watcher.start()
        await next_update(watcher)
        await watcher.stop()

        remaining = [update async for update in watcher]
        assert remaining[-1].kind == UpdateKind.SESSION_ENDED
        assert remaining[-1].reason == StopReason.CLOSED
        assert not watcher.running

    @pytest.mark.asyncio
    async def test_revoked_authorization_ends_watch(self, fast_settings):
        distribution = InMemoryDistributionPoint()
        watcher = make_watcher(fast_settings, distribution, authorized=False)
        watcher.start()

        updates = await asyncio.wait_for(_collect(watcher), timeout=2)

        assert updates[-1].kind == UpdateKind.SESSION_ENDED
        assert updates[-1].reason == StopReason.AUTHORIZATION_REVOKED
        assert watcher.stop_reason == StopReason.AUTHORIZATION_REVOKED

    @pytest.mark.asyncio
    async def test_poll_mode_ignores_push(self, fast_settings):
        distribution = PushDistributionPoint()
        watcher = make_watcher(fast_settings, distribution, mode="poll")
        watcher.start()
        await next_update(watcher)
        assert distribution.subscriber_count("trip-1") == 0
        await watcher.stop()


async def _collect(watcher: PositionWatcher) -> list[LiveUpdate]:
    return [update async for update in watcher]


@pytest.mark.unit
class TestPushWatcher:
    """Viewer on a distribution point with push delivery."""

    @pytest.mark.asyncio
    async def test_receives_pushed_positions(self, push_distribution, fast_settings):
        watcher = make_watcher(fast_settings, push_distribution)
        watcher.start()
        assert (await next_update(watcher)).kind == UpdateKind.AWAITING_POSITION

        await wait_until(lambda: push_distribution.subscriber_count("trip-1") == 1)
        await push_distribution.publish("trip-1", make_position(1))
        await push_distribution.publish("trip-1", make_position(2))

        assert (await next_update(watcher)).position == make_position(1)
        assert (await next_update(watcher)).position == make_position(2)

        await watcher.stop()
        assert push_distribution.subscriber_count("trip-1") == 0

    @pytest.mark.asyncio
    async def test_late_joiner_gets_latest_value(self, push_distribution, fast_settings):
        await push_distribution.publish("trip-1", make_position(7))
        watcher = make_watcher(fast_settings, push_distribution)
        watcher.start()
        assert (await next_update(watcher)).position == make_position(7)
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_older_pushed_value_is_ignored(self, push_distribution, fast_settings):
        await push_distribution.publish("trip-1", make_position(5))
        watcher = make_watcher(fast_settings, push_distribution)
        watcher.start()
        await next_update(watcher)
        await wait_until(lambda: push_distribution.subscriber_count("trip-1") == 1)

        await push_distribution.publish("trip-1", make_position(3))
        await push_distribution.publish("trip-1", make_position(6))
        assert (await next_update(watcher)).position == make_position(6)
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_falls_back_to_polling_when_push_fails(self, fast_settings):
        distribution = BrokenPushDistributionPoint()
        watcher = make_watcher(fast_settings, distribution)
        watcher.start()
        assert (await next_update(watcher)).kind == UpdateKind.AWAITING_POSITION

        await distribution.publish("trip-1", make_position(1))
        assert (await next_update(watcher)).position == make_position(1)
        await watcher.stop()


@pytest.mark.unit
class TestRiderPositions:
    """Rider positions reach the driver's watch only."""

    @pytest.mark.asyncio
    async def test_driver_receives_rider_positions(self, fast_settings):
        distribution = InMemoryDistributionPoint()
        watcher = make_watcher(fast_settings, distribution, role="driver")
        watcher.start()
        assert (await next_update(watcher)).kind == UpdateKind.AWAITING_POSITION

        await distribution.publish_rider("trip-1", "rider-1", make_position(1))
        update = await next_update(watcher)
        assert update.kind == UpdateKind.RIDER_POSITION
        assert update.rider_id == "rider-1"
        assert update.position == make_position(1)

        await distribution.publish_rider("trip-1", "rider-1", make_position(2))
        assert (await next_update(watcher)).position == make_position(2)
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_unchanged_rider_position_is_not_repeated(self, fast_settings):
        distribution = InMemoryDistributionPoint()
        await distribution.publish_rider("trip-1", "rider-1", make_position(1))
        watcher = make_watcher(fast_settings, distribution, role="driver")
        watcher.start()

        await asyncio.sleep(fast_settings.poll_interval_seconds * 5)
        await watcher.stop()
        kinds = [update.kind async for update in watcher]
        assert kinds.count(UpdateKind.RIDER_POSITION) == 1

    @pytest.mark.asyncio
    async def test_rider_watch_never_sees_rider_positions(self, fast_settings):
        distribution = InMemoryDistributionPoint()
        await distribution.publish_rider("trip-1", "rider-2", make_position(1))
        watcher = make_watcher(fast_settings, distribution, role="rider")
        watcher.start()

        await asyncio.sleep(fast_settings.poll_interval_seconds * 5)
        await watcher.stop()
        kinds = [update.kind async for update in watcher]
        assert UpdateKind.RIDER_POSITION not in kinds

    @pytest.mark.asyncio
    async def test_rider_positions_alongside_push(self, push_distribution, fast_settings):
        watcher = make_watcher(fast_settings, push_distribution, role="driver")
        watcher.start()
        await next_update(watcher)

        await push_distribution.publish_rider("trip-1", "rider-1", make_position(3))
        update = await next_update(watcher)
        assert update.kind == UpdateKind.RIDER_POSITION
        await watcher.stop()


@pytest.mark.unit
class TestUpdateQueue:
    """Slow viewers lose the oldest updates first."""

    def test_full_queue_drops_oldest(self):
        settings = TrackingSettings(viewer_queue_size=2)
        watcher = make_watcher(settings, InMemoryDistributionPoint())
        for second in (1, 2, 3):
            watcher._emit(make_position(second))
        positions = [watcher._updates.get_nowait().position for _ in range(2)]
        assert positions == [make_position(2), make_position(3)]

    def test_to_message(self):
        update = LiveUpdate(trip_id="trip-1", kind=UpdateKind.POSITION, position=make_position(1))
        message = update.to_message()
        assert message["type"] == "position"
        assert message["data"]["trip_id"] == "trip-1"
        assert message["data"]["position"]["latitude"] == make_position(1).latitude
        assert "kind" not in message["data"]

    def test_rider_message_names_the_rider(self):
        update = LiveUpdate(
            trip_id="trip-1",
            kind=UpdateKind.RIDER_POSITION,
            position=make_position(1),
            rider_id="rider-1",
        )
        message = update.to_message()
        assert message["type"] == "rider_position"
        assert message["data"]["rider_id"] == "rider-1"
