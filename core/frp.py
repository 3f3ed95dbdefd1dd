from dataclasses import dataclass, replace
from datetime import datetime
from functools import reduce
from typing import Callable, Tuple
import uuid

from .domain import Event, StoreState
from .transforms import (
    add_to_cart,
    clear_cart,
    loaded_after_holds,
    reapply_holds,
    remove_from_cart,
)

Handler = Callable[[Event, StoreState], StoreState]


@dataclass(frozen=True)
class EventBus:
    """
    Иммутабельная шина событий витрины.
    Обработчики - чистые функции (Event, StoreState) -> StoreState.
    Обработчик может поднять StoreError - тогда состояние не меняется.
    """

    subscribers: Tuple[Tuple[str, Handler], ...] = ()

    def subscribe(self, event_name: str, handler: Handler) -> "EventBus":
        return EventBus(subscribers=self.subscribers + ((event_name, handler),))

    def handles(self, event_name: str) -> bool:
        return any(name == event_name for name, _ in self.subscribers)

    def publish(self, event: Event, state: StoreState) -> StoreState:
        matching = tuple(h for name, h in self.subscribers if name == event.name)
        new_state = reduce(lambda s, h: h(event, s), matching, state)
        return replace(new_state, last_event=event.name)


def create_event(name: str, payload: dict) -> Event:
    return Event(
        id=str(uuid.uuid4()),
        ts=datetime.now().isoformat(),
        name=name,
        payload=payload,
    )


# ============ Каталог ============


def handle_lessons_loaded(event: Event, state: StoreState) -> StoreState:
    """Полная замена каталога; места, которые держит корзина, списываются снова"""
    lessons = event.payload["lessons"]
    return replace(
        state,
        lessons=reapply_holds(lessons, state.cart),
        loaded_spaces=loaded_after_holds(lessons, state.cart),
    )


# ============ Корзина ============


def handle_add_to_cart(event: Event, state: StoreState) -> StoreState:
    return add_to_cart(
        state, event.payload["lesson_id"], event.payload["entry_id"]
    ).get_or_raise()


def handle_remove_from_cart(event: Event, state: StoreState) -> StoreState:
    return remove_from_cart(state, event.payload["entry_id"]).get_or_raise()


def handle_clear_cart(event: Event, state: StoreState) -> StoreState:
    return clear_cart(state)


# ============ Представление ============


def handle_search(event: Event, state: StoreState) -> StoreState:
    return replace(state, search_query=event.payload.get("query", ""))


def handle_sort(event: Event, state: StoreState) -> StoreState:
    return replace(
        state,
        sort_by=event.payload.get("sort_by", ""),
        sort_order=event.payload.get("sort_order", "asc"),
    )


def handle_toggle_cart(event: Event, state: StoreState) -> StoreState:
    show = event.payload.get("show")
    return replace(state, show_cart=(not state.show_cart) if show is None else bool(show))


def handle_customer(event: Event, state: StoreState) -> StoreState:
    return replace(
        state,
        name=event.payload.get("name", state.name),
        phone=event.payload.get("phone", state.phone),
    )


# ============ Оформление заказа ============


def handle_checkout_status(event: Event, state: StoreState) -> StoreState:
    return replace(state, checkout_status=event.payload["status"], alert="")


def handle_checkout_failed(event: Event, state: StoreState) -> StoreState:
    return replace(state, checkout_status="failed", alert=event.payload["message"])


def handle_checkout_succeeded(event: Event, state: StoreState) -> StoreState:
    """Сообщение сразу, поля формы очищаются; корзина живёт до сброса"""
    return replace(
        state,
        checkout_status="succeeded",
        order_message=event.payload["message"],
        name="",
        phone="",
    )


def handle_checkout_reset(event: Event, state: StoreState) -> StoreState:
    # места не возвращаются: заказ уже оформлен, списание фиксируется
    return replace(
        state,
        cart=(),
        loaded_spaces=tuple((l.id, l.spaces) for l in state.lessons),
        order_message="",
        show_cart=False,
        checkout_status="idle",
    )


def create_store_event_bus() -> EventBus:
    bus = EventBus()
    bus = bus.subscribe("LESSONS_LOADED", handle_lessons_loaded)
    bus = bus.subscribe("ADD_TO_CART", handle_add_to_cart)
    bus = bus.subscribe("REMOVE_FROM_CART", handle_remove_from_cart)
    bus = bus.subscribe("CLEAR_CART", handle_clear_cart)
    bus = bus.subscribe("SEARCH", handle_search)
    bus = bus.subscribe("SORT", handle_sort)
    bus = bus.subscribe("TOGGLE_CART", handle_toggle_cart)
    bus = bus.subscribe("CUSTOMER", handle_customer)
    bus = bus.subscribe("CHECKOUT_STATUS", handle_checkout_status)
    bus = bus.subscribe("CHECKOUT_FAILED", handle_checkout_failed)
    bus = bus.subscribe("CHECKOUT_SUCCEEDED", handle_checkout_succeeded)
    bus = bus.subscribe("CHECKOUT_RESET", handle_checkout_reset)
    return bus


def initial_state() -> StoreState:
    return StoreState()


def apply_events(bus: EventBus, events: Tuple[Event, ...], state: StoreState) -> StoreState:
    return reduce(lambda s, e: bus.publish(e, s), events, state)
