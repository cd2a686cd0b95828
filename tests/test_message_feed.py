import asyncio
import logging

import pytest

from conftest import make_message
from happyinline.utils.message_feed import (
    MessageSubscription,
    SeenMessageIds,
    SubscriptionState,
    subscribe_to_messages,
)


class ScriptedFetch:
    """Returns the queued responses in order, then empty lists. Exceptions are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, conversation_id, limit):
        self.calls.append((conversation_id, limit))
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, Exception):
            raise response
        return response


class Recorder:

    def __init__(self):
        self.delivered = []
        self.event = asyncio.Event()

    async def __call__(self, message):
        self.delivered.append(message["id"])
        self.event.set()


def newest_first(*ids):
    return [make_message(i, minute=int(i)) for i in ids]


# =============================================================================
# SEEN SET
# =============================================================================


def test_seen_ids_evicts_oldest_past_capacity():
    seen = SeenMessageIds(capacity=3)
    seen.update(["a", "b", "c", "a"])
    seen.add("d")

    assert "a" not in seen
    assert all(i in seen for i in ("b", "c", "d"))
    assert len(seen) == 3


def test_seen_ids_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        SeenMessageIds(capacity=0)


# =============================================================================
# POLL CYCLES
# =============================================================================


async def test_backfill_then_polls_deliver_only_new_messages_in_order():
    fetch = ScriptedFetch(newest_first(3, 2, 1), newest_first(3, 2, 4), newest_first(5, 4, 3))
    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, fetch)

    await sub.backfill()
    assert recorder.delivered == []

    assert await sub.poll_once() == 1
    assert await sub.poll_once() == 1
    assert recorder.delivered == ["4", "5"]
    assert fetch.calls == [("c1", 100), ("c1", 20), ("c1", 20)]


async def test_history_is_never_replayed():
    history = newest_first(9, 8, 7, 6)
    fetch = ScriptedFetch(history, history[:2], history)
    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, fetch)

    await sub.backfill()
    await sub.poll_once()
    await sub.poll_once()

    assert recorder.delivered == []
    assert sub.seen_count == 4


async def test_batch_is_delivered_oldest_first():
    fetch = ScriptedFetch([], newest_first(7, 6, 5))
    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, fetch)

    await sub.backfill()
    await sub.poll_once()

    assert recorder.delivered == ["5", "6", "7"]


async def test_short_fetch_results_are_checked_normally():
    fetch = ScriptedFetch(newest_first(1), newest_first(2, 1))
    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, fetch)

    await sub.backfill()
    await sub.poll_once()

    assert recorder.delivered == ["2"]


@pytest.mark.parametrize("completion_order", [(0, 1), (1, 0)])
async def test_overlapping_polls_deliver_each_message_once(completion_order):
    results = [
        [make_message("C", 3), make_message("B", 2), make_message("A", 1)],
        [make_message("D", 4), make_message("C", 3), make_message("B", 2)],
    ]
    gates = [asyncio.Event(), asyncio.Event()]
    started = []

    async def gated_fetch(conversation_id, limit):
        index = len(started)
        started.append(index)
        await gates[index].wait()
        return results[index]

    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, gated_fetch)
    cycles = [asyncio.create_task(sub.poll_once()), asyncio.create_task(sub.poll_once())]
    await asyncio.sleep(0)
    assert started == [0, 1]

    for index in completion_order:
        gates[index].set()
        await cycles[index]

    assert sorted(recorder.delivered) == ["A", "B", "C", "D"]
    assert len(recorder.delivered) == 4


async def test_fetch_failure_skips_cycle_and_keeps_subscription(caplog):
    fetch = ScriptedFetch([], ConnectionError("backend down"), newest_first(1))
    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, fetch)

    await sub.backfill()
    with caplog.at_level(logging.WARNING, logger="happyinline.utils.message_feed"):
        assert await sub.poll_once() == 0
    assert "skipping cycle" in caplog.text

    assert await sub.poll_once() == 1
    assert recorder.delivered == ["1"]
    assert sub.active


async def test_failed_backfill_reports_failure_and_seeds_nothing(caplog):
    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, ScriptedFetch(TimeoutError("slow")))

    with caplog.at_level(logging.ERROR, logger="happyinline.utils.message_feed"):
        assert await sub.backfill() is False
    assert "Backfill failed" in caplog.text
    assert sub.seen_count == 0
    assert recorder.delivered == []


async def test_failing_callback_does_not_block_rest_of_batch():
    delivered = []

    async def flaky(message):
        if message["id"] == "1":
            raise RuntimeError("consumer broke")
        delivered.append(message["id"])

    sub = MessageSubscription("c1", flaky, ScriptedFetch([], newest_first(2, 1)))
    await sub.backfill()

    assert await sub.poll_once() == 1
    assert delivered == ["2"]


# =============================================================================
# CANCELLATION
# =============================================================================


async def test_in_flight_fetch_result_is_dropped_after_cancel():
    gate = asyncio.Event()

    async def slow_fetch(conversation_id, limit):
        await gate.wait()
        return newest_first(2, 1)

    recorder = Recorder()
    sub = MessageSubscription("c1", recorder, slow_fetch)
    cycle = asyncio.create_task(sub.poll_once())
    await asyncio.sleep(0)

    sub.cancel()
    gate.set()

    assert await cycle == 0
    assert recorder.delivered == []
    assert sub.state is SubscriptionState.CANCELLED
    assert sub.seen_count == 0


async def test_cancel_from_callback_stops_rest_of_batch():
    delivered = []

    async def cancel_after_first(message):
        delivered.append(message["id"])
        sub.cancel()

    sub = MessageSubscription("c1", cancel_after_first, ScriptedFetch([], newest_first(3, 2, 1)))
    await sub.backfill()
    await sub.poll_once()

    assert delivered == ["1"]


async def test_poll_after_cancel_is_a_no_op():
    fetch = ScriptedFetch([], newest_first(1))
    sub = MessageSubscription("c1", Recorder(), fetch)
    sub.cancel()
    sub.cancel()

    assert await sub.poll_once() == 0
    assert fetch.calls == []


# =============================================================================
# LIFECYCLE
# =============================================================================


async def test_subscription_polls_on_timer_until_cancelled():
    calls = []

    async def fetch(conversation_id, limit):
        calls.append(limit)
        if limit == 100:
            return newest_first(1)
        return newest_first(2, 1)

    recorder = Recorder()
    sub = subscribe_to_messages("c1", recorder, fetch, poll_interval=0.01)
    assert sub.state is SubscriptionState.IDLE

    await asyncio.wait_for(recorder.event.wait(), timeout=2)
    assert sub.state is SubscriptionState.POLLING
    assert calls[0] == 100

    sub.cancel()
    calls_at_cancel = len(calls)
    await asyncio.sleep(0.05)

    assert recorder.delivered == ["2"]
    assert len(calls) == calls_at_cancel
    assert sub.state is SubscriptionState.CANCELLED


async def test_failed_backfill_is_retried_before_any_poll():
    history = newest_first(3, 2, 1)
    limits = []

    async def fetch(conversation_id, limit):
        limits.append(limit)
        if len(limits) == 1:
            raise ConnectionError("backend down")
        if limits.count(20) >= 3:
            return newest_first(4) + history
        return history

    recorder = Recorder()
    sub = subscribe_to_messages("c1", recorder, fetch, poll_interval=0.01)

    await asyncio.wait_for(recorder.event.wait(), timeout=2)
    sub.cancel()

    assert limits[:3] == [100, 100, 20]
    assert recorder.delivered == ["4"]


async def test_hung_fetch_does_not_hold_back_later_ticks():
    stuck = asyncio.Event()
    polls = []

    async def fetch(conversation_id, limit):
        if limit == 100:
            return newest_first(1)
        polls.append(limit)
        if len(polls) == 1:
            await stuck.wait()
            return newest_first(1)
        return newest_first(2, 1)

    recorder = Recorder()
    sub = subscribe_to_messages("c1", recorder, fetch, poll_interval=0.01)

    await asyncio.wait_for(recorder.event.wait(), timeout=2)
    assert recorder.delivered == ["2"]
    assert len(polls) >= 2

    sub.cancel()
    stuck.set()
    await asyncio.sleep(0.02)
    assert recorder.delivered == ["2"]


async def test_cancel_during_backfill_stops_timer_without_delivery():
    gate = asyncio.Event()
    limits = []

    async def fetch(conversation_id, limit):
        limits.append(limit)
        await gate.wait()
        return newest_first(2, 1)

    recorder = Recorder()
    sub = subscribe_to_messages("c1", recorder, fetch, poll_interval=0.01)
    await asyncio.sleep(0.01)
    assert sub.state is SubscriptionState.BACKFILL_PENDING
    timer = sub._timer_task

    sub.cancel()
    gate.set()
    await asyncio.sleep(0.05)

    assert timer.done()
    assert sub._timer_task is None
    assert limits == [100]
    assert recorder.delivered == []
    assert sub.state is SubscriptionState.CANCELLED


async def test_start_twice_is_rejected():
    sub = MessageSubscription("c1", Recorder(), ScriptedFetch())
    sub.start()
    with pytest.raises(RuntimeError):
        sub.start()
    sub.cancel()


def test_conversation_id_is_required():
    with pytest.raises(ValueError):
        MessageSubscription("", Recorder(), ScriptedFetch())


def test_seen_capacity_must_cover_fetch_windows():
    with pytest.raises(ValueError):
        MessageSubscription("c1", Recorder(), ScriptedFetch(), seen_capacity=50)
