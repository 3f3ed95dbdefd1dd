import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest
import respx
from core.checkout import (
    CHECKOUT_FAILED_MESSAGE,
    EMPTY_CART_MESSAGE,
    ORDER_FAILED_MESSAGE,
    SUCCESS_MESSAGE,
    CheckoutSequencer,
    CheckoutStatus,
)
from core.client import LessonsClient
from core.config import Settings
from core.domain import CartItem
from core.errors import CartLocked
from core.service import Storefront
from core.transforms import capacity_invariant_holds
from core.validation import PHONE_MESSAGE

BASE = "http://lessons.test"

RAW = [
    {"id": 1, "topic": "Math", "location": "London", "price": 100, "spaces": 5},
    {"id": 2, "topic": "Science", "location": "Paris", "price": 80, "spaces": 5},
    {"id": 3, "topic": "History", "location": "Dubai", "price": 90, "spaces": 5},
    {"id": 4, "topic": "Art", "location": "Tokyo", "price": 120, "spaces": 5},
]


def body(call) -> dict:
    return json.loads(call.request.content)


async def loaded_store(reset_delay: float = 0.0) -> Storefront:
    settings = Settings(api_base_url=BASE, reset_delay=reset_delay)
    store = Storefront(LessonsClient(settings), settings)
    await store.load()
    return store


@pytest.mark.asyncio
@respx.mock
async def test_invalid_phone_never_hits_network():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    orders = respx.post(f"{BASE}/orders").respond(201, json={})
    updates = respx.put(url__regex=rf"{BASE}/lessons/\d+").respond(200, json={})
    store = await loaded_store()
    store.add_to_cart(1)
    store.set_customer(name="Jane Doe", phone="123")
    cart_before = store.state.cart

    result = await store.checkout()

    assert result.status is CheckoutStatus.FAILED
    assert result.message == PHONE_MESSAGE
    assert not orders.called
    assert not updates.called
    assert store.state.cart == cart_before
    assert store.state.name == "Jane Doe"
    assert store.state.phone == "123"
    assert store.state.alert == PHONE_MESSAGE


@pytest.mark.asyncio
@respx.mock
async def test_empty_cart_is_refused():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    orders = respx.post(f"{BASE}/orders").respond(201, json={})
    store = await loaded_store()
    store.set_customer(name="Jane Doe", phone="1234567890")

    result = await store.checkout()

    assert result.message == EMPTY_CART_MESSAGE
    assert not orders.called


@pytest.mark.asyncio
@respx.mock
async def test_successful_checkout_and_delayed_reset():
    lessons_route = respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    orders = respx.post(f"{BASE}/orders").respond(201, json={"id": "o1"})
    update_1 = respx.put(f"{BASE}/lessons/1").respond(200, json={})
    update_2 = respx.put(f"{BASE}/lessons/2").respond(200, json={})
    store = await loaded_store()
    store.add_to_cart(1)
    store.add_to_cart(2)
    store.add_to_cart(1)
    store.set_customer(name="Jane Doe", phone="1234567890")

    result = await store.checkout()

    assert result.ok
    assert result.updated == (1, 2, 1)
    assert body(orders.calls[0]) == {
        "name": "Jane Doe",
        "phone": "1234567890",
        "lessonIDs": [1, 2, 1],
        "spaces": 3,
    }
    assert [body(c) for c in update_1.calls] == [{"spaces": 4}, {"spaces": 3}]
    assert [body(c) for c in update_2.calls] == [{"spaces": 4}]

    # до сброса корзина и списанные места остаются
    assert store.state.order_message == SUCCESS_MESSAGE
    assert store.state.name == ""
    assert store.state.phone == ""
    assert len(store.state.cart) == 3
    assert store.sequencer.reset_pending

    await store.wait_reset()

    assert store.state.cart == ()
    assert store.state.order_message == ""
    assert store.state.show_cart is False
    assert store.state.checkout_status == "idle"
    assert lessons_route.call_count == 2
    assert capacity_invariant_holds(store.state)


@pytest.mark.asyncio
@respx.mock
async def test_capacity_updates_are_sequential_in_cart_order():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.post(f"{BASE}/orders").respond(201, json={})
    respx.put(url__regex=rf"{BASE}/lessons/\d+").respond(200, json={})
    store = await loaded_store()
    for lesson_id in (3, 1, 4):
        store.add_to_cart(lesson_id)
    store.set_customer(name="Jane Doe", phone="1234567890")

    await store.checkout()

    puts = [c.request.url.path for c in respx.calls if c.request.method == "PUT"]
    assert puts == ["/lessons/3", "/lessons/1", "/lessons/4"]
    await store.wait_reset()


@pytest.mark.asyncio
@respx.mock
async def test_rejected_order_keeps_cart_and_holds():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.post(f"{BASE}/orders").respond(500)
    updates = respx.put(url__regex=rf"{BASE}/lessons/\d+").respond(200, json={})
    store = await loaded_store()
    store.add_to_cart(1)
    store.set_customer(name="Jane Doe", phone="1234567890")

    result = await store.checkout()

    assert result.message == ORDER_FAILED_MESSAGE
    assert not updates.called
    assert len(store.state.cart) == 1
    assert store.find_by_id(1).get_or_else(None).spaces == 4
    assert store.state.alert == ORDER_FAILED_MESSAGE
    assert not store.sequencer.busy


@pytest.mark.asyncio
@respx.mock
async def test_missing_orders_route_counts_as_rejected_order():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.post(f"{BASE}/orders").respond(404)
    store = await loaded_store()
    store.add_to_cart(2)
    store.set_customer(name="Jane Doe", phone="1234567890")

    result = await store.checkout()

    assert result.message == ORDER_FAILED_MESSAGE


@pytest.mark.asyncio
@respx.mock
async def test_failed_update_aborts_remaining_updates():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.post(f"{BASE}/orders").respond(201, json={})
    first = respx.put(f"{BASE}/lessons/1").respond(200, json={})
    second = respx.put(f"{BASE}/lessons/2").respond(500)
    third = respx.put(f"{BASE}/lessons/3").respond(200, json={})
    store = await loaded_store()
    for lesson_id in (1, 2, 3):
        store.add_to_cart(lesson_id)
    store.set_customer(name="Jane Doe", phone="1234567890")

    result = await store.checkout()

    assert result.status is CheckoutStatus.FAILED
    assert result.message == CHECKOUT_FAILED_MESSAGE
    assert result.updated == (1,)
    assert first.called and second.called
    assert not third.called
    assert len(store.state.cart) == 3
    assert not store.sequencer.reset_pending


@pytest.mark.asyncio
@respx.mock
async def test_connection_error_on_submit():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.post(f"{BASE}/orders").mock(side_effect=httpx.ConnectError("down"))
    store = await loaded_store()
    store.add_to_cart(1)
    store.set_customer(name="Jane Doe", phone="1234567890")

    result = await store.checkout()

    assert result.message == CHECKOUT_FAILED_MESSAGE


@pytest.mark.asyncio
@respx.mock
async def test_cart_locked_while_checkout_in_flight():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.put(url__regex=rf"{BASE}/lessons/\d+").respond(200, json={})
    store = await loaded_store()
    entry = store.add_to_cart(1)
    store.set_customer(name="Jane Doe", phone="1234567890")

    def order_side_effect(request):
        with pytest.raises(CartLocked):
            store.add_to_cart(2)
        with pytest.raises(CartLocked):
            store.remove_from_cart(entry.entry_id)
        with pytest.raises(CartLocked):
            store.clear_cart()
        return httpx.Response(201, json={})

    respx.post(f"{BASE}/orders").mock(side_effect=order_side_effect)

    result = await store.checkout()
    assert result.ok

    # до сброса корзина всё ещё заблокирована
    with pytest.raises(CartLocked):
        store.add_to_cart(2)
    with pytest.raises(CartLocked):
        await store.checkout()

    await store.wait_reset()
    store.add_to_cart(2)
    assert store.cart_count() == 1


@pytest.mark.asyncio
@respx.mock
async def test_closing_session_cancels_reset():
    lessons_route = respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.post(f"{BASE}/orders").respond(201, json={})
    respx.put(url__regex=rf"{BASE}/lessons/\d+").respond(200, json={})
    store = await loaded_store(reset_delay=60.0)
    store.add_to_cart(1)
    store.set_customer(name="Jane Doe", phone="1234567890")
    await store.checkout()
    assert store.sequencer.reset_pending

    await store.aclose()
    await store.wait_reset()

    assert not store.sequencer.reset_pending
    assert store.sequencer.status is CheckoutStatus.IDLE
    assert store.state.checkout_status == "idle"
    # заказ оформлен: корзина сбрасывается сразу, каталог не перезагружается
    assert store.state.cart == ()
    assert capacity_invariant_holds(store.state)
    assert lessons_route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_subscribers_see_every_transition():
    respx.get(f"{BASE}/lessons").respond(200, json=RAW)
    respx.post(f"{BASE}/orders").respond(201, json={})
    respx.put(url__regex=rf"{BASE}/lessons/\d+").respond(200, json={})
    store = await loaded_store()
    store.add_to_cart(4)
    store.set_customer(name="Jane Doe", phone="1234567890")
    seen = []
    unsubscribe = store.subscribe(
        lambda event, state: seen.append((event.name, state.checkout_status))
    )

    await store.checkout()
    await store.wait_reset()
    unsubscribe()
    store.toggle_cart()

    assert seen == [
        ("CHECKOUT_STATUS", "validating"),
        ("CHECKOUT_STATUS", "submitting"),
        ("CHECKOUT_STATUS", "updating_capacities"),
        ("CHECKOUT_SUCCEEDED", "succeeded"),
        ("CHECKOUT_STATUS", "idle"),
        ("CHECKOUT_RESET", "idle"),
        ("LESSONS_LOADED", "idle"),
    ]


@pytest.mark.asyncio
async def test_sequencer_reports_validation_failure_without_client_calls():
    client = AsyncMock(spec=LessonsClient)
    transitions = []
    sequencer = CheckoutSequencer(
        client, reset_delay=0.0, on_transition=lambda s, m: transitions.append((s, m))
    )
    cart = (
        CartItem(entry_id="e1", id=1, topic="Math", location="London", price=100, spaces=4),
    )

    result = await sequencer.run("Jane3", "1234567890", cart)

    assert result.status is CheckoutStatus.FAILED
    assert result.error.field == "name"
    assert transitions[0] == (CheckoutStatus.VALIDATING, "")
    assert transitions[-1][0] is CheckoutStatus.FAILED
    client.create_order.assert_not_called()
    client.update_lesson_spaces.assert_not_called()


# ============ Прерванное оформление ============


def mocked_client() -> AsyncMock:
    client = AsyncMock(spec=LessonsClient)
    client.fetch_lessons.return_value = RAW
    return client


@pytest.mark.asyncio
async def test_cancelled_checkout_releases_cart():
    client = mocked_client()
    submitted = asyncio.Event()

    async def hang(order):
        submitted.set()
        await asyncio.Event().wait()

    client.create_order.side_effect = hang
    store = Storefront(client, Settings(reset_delay=0.0))
    await store.load()
    store.add_to_cart(1)
    store.set_customer(name="Jane Doe", phone="1234567890")

    task = asyncio.create_task(store.checkout())
    await submitted.wait()
    assert store.sequencer.status is CheckoutStatus.SUBMITTING

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.sequencer.status is CheckoutStatus.FAILED
    assert not store.sequencer.busy
    assert store.state.alert == CHECKOUT_FAILED_MESSAGE
    store.clear_cart()
    assert store.state.cart == ()


@pytest.mark.asyncio
async def test_unexpected_error_releases_cart():
    client = mocked_client()
    client.update_lesson_spaces.side_effect = RuntimeError("boom")
    store = Storefront(client, Settings(reset_delay=0.0))
    await store.load()
    store.add_to_cart(2)
    store.set_customer(name="Jane Doe", phone="1234567890")

    with pytest.raises(RuntimeError):
        await store.checkout()

    assert store.sequencer.status is CheckoutStatus.FAILED
    assert store.state.checkout_status == "failed"
    store.add_to_cart(3)
    assert store.cart_count() == 2


def test_reset_applied_when_loop_closes_early():
    """Каждое действие в отдельном asyncio.run: отложенный сброс не доживает до срока"""
    client = mocked_client()
    store = Storefront(client, Settings(reset_delay=60.0))

    async def flow():
        await store.load()
        store.add_to_cart(1)
        store.set_customer(name="Jane Doe", phone="1234567890")
        return await store.checkout()

    result = asyncio.run(flow())

    assert result.ok
    assert store.sequencer.status is CheckoutStatus.IDLE
    assert not store.sequencer.reset_pending
    assert store.state.cart == ()
    assert store.state.order_message == ""
    assert capacity_invariant_holds(store.state)
    assert client.fetch_lessons.await_count == 1

    store.add_to_cart(2)
    assert store.cart_count() == 1
