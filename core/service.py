import logging
from typing import Callable, List, Optional, Tuple

from .checkout import CheckoutResult, CheckoutSequencer, CheckoutStatus
from .client import LessonsClient
from .config import Settings
from .domain import CartItem, Event, Lesson, StoreState
from .errors import CartLocked, NetworkError
from .frp import EventBus, create_event, create_store_event_bus, initial_state
from .ftypes import Maybe
from .transforms import (
    apply_display_floor,
    cart_total,
    filtered_and_sorted,
    find_entry,
    find_lesson,
    held_units,
    new_entry_id,
    parse_lessons,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Event, StoreState], None]


class CatalogStore:
    """Фасад каталога: загрузка уроков с бэкенда и поиск по id"""

    def __init__(self, client: LessonsClient, display_floor: int = 5):
        self.client = client
        self.display_floor = display_floor

    async def fetch(self) -> Tuple[Lesson, ...]:
        raw = await self.client.fetch_lessons()
        return apply_display_floor(parse_lessons(raw), self.display_floor)

    @staticmethod
    def find_by_id(lessons: Tuple[Lesson, ...], lesson_id: int) -> Maybe[Lesson]:
        return find_lesson(lessons, lesson_id)


class Storefront:
    """
    Контроллер витрины. Владеет StoreState; каждое изменение проходит
    через шину событий и рассылается подписчикам.
    """

    def __init__(
        self,
        client: LessonsClient,
        settings: Optional[Settings] = None,
        bus: Optional[EventBus] = None,
    ):
        settings = settings or Settings()
        self.catalog = CatalogStore(client, settings.display_floor)
        self.sequencer = CheckoutSequencer(
            client,
            reset_delay=settings.reset_delay,
            on_transition=self._on_transition,
            on_reset=self._on_reset,
            after_reset=self.load,
        )
        self._bus = bus or create_store_event_bus()
        self._state = initial_state()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> StoreState:
        return self._state

    # ============ Подписки ============

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Возвращает функцию отписки"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, name: str, payload: Optional[dict] = None) -> StoreState:
        event = create_event(name, payload or {})
        self._state = self._bus.publish(event, self._state)
        for listener in tuple(self._listeners):
            listener(event, self._state)
        return self._state

    # ============ Каталог ============

    async def load(self) -> bool:
        """
        Полностью заменяет каталог. При ошибке пишет в лог и
        оставляет прежние уроки как есть.
        """
        try:
            lessons = await self.catalog.fetch()
        except (NetworkError, KeyError, TypeError, ValueError):
            logger.exception("Error fetching lessons")
            return False
        self.dispatch("LESSONS_LOADED", {"lessons": lessons})
        logger.info("Loaded %d lessons", len(lessons))
        return True

    def find_by_id(self, lesson_id: int) -> Maybe[Lesson]:
        return self.catalog.find_by_id(self._state.lessons, lesson_id)

    def lessons_view(self) -> Tuple[Lesson, ...]:
        """Каталог с текущими поиском и сортировкой"""
        s = self._state
        return filtered_and_sorted(s.lessons, s.search_query, s.sort_by, s.sort_order)

    # ============ Корзина ============

    def _ensure_unlocked(self) -> None:
        if self.sequencer.busy:
            raise CartLocked()

    def add_to_cart(self, lesson_id: int) -> CartItem:
        """CapacityExhausted, если мест нет; NotFound, если урока нет"""
        self._ensure_unlocked()
        entry_id = new_entry_id()
        self.dispatch("ADD_TO_CART", {"lesson_id": lesson_id, "entry_id": entry_id})
        return find_entry(self._state.cart, entry_id).get_or_else(None)

    def remove_from_cart(self, entry_id: str) -> None:
        self._ensure_unlocked()
        self.dispatch("REMOVE_FROM_CART", {"entry_id": entry_id})

    def clear_cart(self) -> None:
        self._ensure_unlocked()
        self.dispatch("CLEAR_CART")

    def cart_count(self) -> int:
        return len(self._state.cart)

    def cart_total(self) -> float:
        return cart_total(self._state.cart)

    def held_units(self, lesson_id: int) -> int:
        return held_units(self._state.cart, lesson_id)

    # ============ Представление и форма ============

    def set_search(self, query: str) -> None:
        self.dispatch("SEARCH", {"query": query})

    def set_sort(self, sort_by: str, sort_order: str = "asc") -> None:
        self.dispatch("SORT", {"sort_by": sort_by, "sort_order": sort_order})

    def toggle_cart(self, show: Optional[bool] = None) -> None:
        self.dispatch("TOGGLE_CART", {"show": show})

    def set_customer(self, name: Optional[str] = None, phone: Optional[str] = None) -> None:
        payload = {}
        if name is not None:
            payload["name"] = name
        if phone is not None:
            payload["phone"] = phone
        self.dispatch("CUSTOMER", payload)

    # ============ Оформление заказа ============

    async def checkout(self) -> CheckoutResult:
        s = self._state
        return await self.sequencer.run(s.name, s.phone, s.cart)

    def _on_transition(self, status: CheckoutStatus, message: str) -> None:
        if status is CheckoutStatus.FAILED:
            self.dispatch("CHECKOUT_FAILED", {"message": message})
        elif status is CheckoutStatus.SUCCEEDED:
            self.dispatch("CHECKOUT_SUCCEEDED", {"message": message})
        else:
            self.dispatch("CHECKOUT_STATUS", {"status": status.value})

    def _on_reset(self) -> None:
        self.dispatch("CHECKOUT_RESET")

    async def wait_reset(self) -> None:
        await self.sequencer.wait_reset()

    async def aclose(self) -> None:
        """Закрывает сессию: сброс после заказа делается сразу, без перезагрузки"""
        self.sequencer.cancel()
