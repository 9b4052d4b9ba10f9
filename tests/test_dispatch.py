import asyncio

import pytest

from teatime_pubsub.dispatch import DeliveryQueue
from teatime_pubsub.message import DeliveryContext, Message
from teatime_pubsub.metrics import REGISTRY


def _ctx(backend="test-dispatch"):
    return DeliveryContext(topic="room:1", subscription_id=1, backend=backend)


def _msg(i):
    return Message(topic="room:1", type=f"evt.{i}")


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.asyncio
async def test_delivers_in_offer_order(eventually):
    seen = []

    async def handler(ctx, msg):
        await asyncio.sleep(0)
        seen.append(msg.type)

    queue = DeliveryQueue(handler, _ctx(), maxsize=100)
    queue.start()
    for i in range(20):
        assert queue.offer(_msg(i)) is True

    assert await eventually(lambda: len(seen) == 20)
    assert seen == [f"evt.{i}" for i in range(20)]
    await queue.stop()


@pytest.mark.asyncio
async def test_sync_handler_is_supported(eventually):
    seen = []
    queue = DeliveryQueue(lambda ctx, msg: seen.append(msg.type), _ctx())
    queue.start()
    queue.offer(_msg(1))
    assert await eventually(lambda: seen == ["evt.1"])
    await queue.stop()


@pytest.mark.asyncio
async def test_handler_error_is_isolated(eventually, caplog):
    seen = []
    backend = "test-dispatch-errors"

    async def handler(ctx, msg):
        if msg.type == "evt.0":
            raise RuntimeError("boom")
        seen.append(msg.type)

    before = _sample("teatime_pubsub_handler_errors_total", backend=backend)
    queue = DeliveryQueue(handler, _ctx(backend))
    queue.start()
    queue.offer(_msg(0))
    queue.offer(_msg(1))

    assert await eventually(lambda: seen == ["evt.1"])
    assert _sample("teatime_pubsub_handler_errors_total", backend=backend) == before + 1
    assert "Handler raised" in caplog.text
    await queue.stop()


@pytest.mark.asyncio
async def test_overflow_drop_oldest_keeps_newest():
    queue = DeliveryQueue(lambda ctx, msg: None, _ctx(), maxsize=2, overflow_policy="drop_oldest")
    # Not started: nothing drains the buffer
    assert queue.offer(_msg(1)) is True
    assert queue.offer(_msg(2)) is True
    assert queue.offer(_msg(3)) is True
    assert queue.pending == 2
    assert [queue._queue.get_nowait().type for _ in range(2)] == ["evt.2", "evt.3"]


@pytest.mark.asyncio
async def test_overflow_drop_newest_rejects_incoming():
    backend = "test-dispatch-overflow"
    before = _sample("teatime_pubsub_dropped_total", backend=backend, reason="overflow")
    queue = DeliveryQueue(
        lambda ctx, msg: None, _ctx(backend), maxsize=1, overflow_policy="drop_newest"
    )
    assert queue.offer(_msg(1)) is True
    assert queue.offer(_msg(2)) is False
    assert queue._queue.get_nowait().type == "evt.1"
    assert _sample("teatime_pubsub_dropped_total", backend=backend, reason="overflow") == before + 1


@pytest.mark.asyncio
async def test_stop_cancels_context_and_rejects_offers():
    started = asyncio.Event()

    async def handler(ctx, msg):
        started.set()
        await asyncio.sleep(10)

    ctx = _ctx()
    queue = DeliveryQueue(handler, ctx)
    queue.start()
    queue.offer(_msg(1))
    queue.offer(_msg(2))
    await asyncio.wait_for(started.wait(), 1)

    await queue.stop()
    assert ctx.cancelled is True
    assert queue.stopped is True
    assert queue.pending == 0
    assert queue.offer(_msg(3)) is False
    # Idempotent
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_from_inside_handler(eventually):
    done = []
    holder = {}

    async def handler(ctx, msg):
        await holder["queue"].stop()
        done.append(ctx.cancelled)

    queue = DeliveryQueue(handler, _ctx())
    holder["queue"] = queue
    queue.start()
    queue.offer(_msg(1))
    assert await eventually(lambda: done == [True])
    assert await eventually(lambda: queue._worker.done())


def test_rejects_non_positive_maxsize():
    with pytest.raises(ValueError):
        DeliveryQueue(lambda ctx, msg: None, _ctx(), maxsize=0)
