import asyncio

import pytest

from src.reactor.events import EventBus, EventKind, ReentrantPublishError


@pytest.mark.asyncio
async def test_publish_delivers_in_subscription_order():
    bus = EventBus()
    received = []

    async def first(payload):
        received.append(("first", payload))

    def second(payload):
        received.append(("second", payload))

    bus.subscribe(EventKind.MODEL_READY, first)
    bus.subscribe(EventKind.MODEL_READY, second)
    await bus.publish(EventKind.MODEL_READY, "llama")

    assert received == [("first", "llama"), ("second", "llama")]


@pytest.mark.asyncio
async def test_subscribe_is_idempotent_and_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []

    bus.subscribe(EventKind.MODEL_STOPPED, lambda: received.append("stopped"))
    handler = received.append
    bus.subscribe(EventKind.MODEL_READY, handler)
    bus.subscribe(EventKind.MODEL_READY, handler)
    assert bus.subscriber_count(EventKind.MODEL_READY) == 1

    await bus.publish(EventKind.MODEL_READY, "a")
    bus.unsubscribe(EventKind.MODEL_READY, handler)
    bus.unsubscribe(EventKind.MODEL_READY, handler)
    await bus.publish(EventKind.MODEL_READY, "b")
    await bus.publish(EventKind.MODEL_STOPPED)

    assert received == ["a", "stopped"]


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others():
    bus = EventBus()
    received = []

    def broken(_payload):
        raise ValueError("boom")

    bus.subscribe(EventKind.MODEL_READY, broken)
    bus.subscribe(EventKind.MODEL_READY, received.append)
    await bus.publish(EventKind.MODEL_READY, "llama")

    assert received == ["llama"]


@pytest.mark.asyncio
async def test_synchronous_republish_is_rejected():
    bus = EventBus()
    errors = []

    async def republish(payload):
        try:
            await bus.publish(EventKind.MESSAGE_SEND_REQUESTED, payload)
        except ReentrantPublishError as exc:
            errors.append(exc)

    bus.subscribe(EventKind.MESSAGE_RESPONSE_UPDATED, republish)
    await bus.publish(EventKind.MESSAGE_RESPONSE_UPDATED, "payload")

    assert len(errors) == 1


@pytest.mark.asyncio
async def test_deferred_publish_runs_after_delivery_unwinds():
    bus = EventBus()
    order = []
    tasks = []

    async def on_updated(payload):
        tasks.append(bus.publish_deferred(EventKind.MESSAGE_SEND_REQUESTED, payload))
        order.append("handler done")

    bus.subscribe(EventKind.MESSAGE_RESPONSE_UPDATED, on_updated)
    bus.subscribe(EventKind.MESSAGE_SEND_REQUESTED, lambda payload: order.append(f"sent {payload}"))

    await bus.publish(EventKind.MESSAGE_RESPONSE_UPDATED, "req-1")
    order.append("publish returned")
    await asyncio.gather(*tasks)

    assert order == ["handler done", "publish returned", "sent req-1"]
