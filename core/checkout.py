import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from .client import LessonsClient
from .domain import CartItem, Order
from .errors import BackendStatusError, CartLocked, NetworkError
from .validation import validate_customer

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Order placed successfully!"
ORDER_FAILED_MESSAGE = "Order failed. Please try again."
CHECKOUT_FAILED_MESSAGE = "Checkout failed. Please try again."
EMPTY_CART_MESSAGE = "Your cart is empty"


class CheckoutStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    UPDATING_CAPACITIES = "updating_capacities"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# пока статус один из этих, корзину трогать нельзя
LOCKING_STATUSES = frozenset(
    {
        CheckoutStatus.VALIDATING,
        CheckoutStatus.SUBMITTING,
        CheckoutStatus.UPDATING_CAPACITIES,
        CheckoutStatus.SUCCEEDED,
    }
)


@dataclass(frozen=True)
class CheckoutResult:
    status: CheckoutStatus
    message: str
    order: Optional[Order] = None
    updated: Tuple[int, ...] = ()  # id уроков, чьи места успели обновиться
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status is CheckoutStatus.SUCCEEDED


Transition = Callable[[CheckoutStatus, str], None]


class CheckoutSequencer:
    """
    Оформление заказа:
    Idle -> Validating -> Submitting -> UpdatingCapacities -> Succeeded | Failed,
    из Succeeded обратно в Idle через reset_delay секунд.

    Обновления мест идут строго по одному, в порядке корзины. Ошибка на любом
    шаге обрывает оставшиеся шаги; уже сделанное не откатывается.
    Прерванный run (отмена задачи, непредвиденное исключение) тоже ведёт в Failed.
    """

    def __init__(
        self,
        client: LessonsClient,
        reset_delay: float = 3.0,
        on_transition: Optional[Transition] = None,
        on_reset: Optional[Callable[[], None]] = None,
        after_reset: Optional[Callable[[], Awaitable[object]]] = None,
    ):
        self.client = client
        self.reset_delay = reset_delay
        self.on_transition = on_transition
        self.on_reset = on_reset
        self.after_reset = after_reset
        self._status = CheckoutStatus.IDLE
        self._reset_task: Optional[asyncio.Task] = None

    @property
    def status(self) -> CheckoutStatus:
        return self._status

    @property
    def busy(self) -> bool:
        return self._status in LOCKING_STATUSES

    def _enter(self, status: CheckoutStatus, message: str = "") -> None:
        self._status = status
        if self.on_transition is not None:
            self.on_transition(status, message)

    def _fail(
        self,
        message: str,
        error: Optional[Exception] = None,
        order: Optional[Order] = None,
        updated: Tuple[int, ...] = (),
    ) -> CheckoutResult:
        self._enter(CheckoutStatus.FAILED, message)
        return CheckoutResult(CheckoutStatus.FAILED, message, order, updated, error)

    async def run(
        self, name: str, phone: str, cart: Tuple[CartItem, ...]
    ) -> CheckoutResult:
        if self.busy:
            raise CartLocked()
        try:
            return await self._run(name, phone, cart)
        except BaseException as exc:
            # отмена или непредвиденная ошибка: корзина не должна остаться заблокированной
            logger.warning("Checkout interrupted: %r", exc)
            self._enter(CheckoutStatus.FAILED, CHECKOUT_FAILED_MESSAGE)
            raise

    async def _run(
        self, name: str, phone: str, cart: Tuple[CartItem, ...]
    ) -> CheckoutResult:
        self._enter(CheckoutStatus.VALIDATING)
        validated = validate_customer(name, phone)
        if validated.is_left:
            return self._fail(validated.value.message, validated.value)
        if not cart:
            return self._fail(EMPTY_CART_MESSAGE)

        snapshot = tuple(cart)
        order = Order(
            name=name,
            phone=phone,
            lesson_ids=tuple(item.id for item in snapshot),
            spaces=len(snapshot),
        )
        updated: List[int] = []

        try:
            self._enter(CheckoutStatus.SUBMITTING)
            try:
                await self.client.create_order(order)
            except BackendStatusError as exc:
                logger.warning("Order rejected by backend: %s", exc)
                return self._fail(ORDER_FAILED_MESSAGE, exc, order)

            self._enter(CheckoutStatus.UPDATING_CAPACITIES)
            # ответ PUT с кодом ошибки тоже обрывает оформление, не только обрыв связи
            for item in snapshot:
                await self.client.update_lesson_spaces(item.id, item.spaces)
                updated.append(item.id)
        except NetworkError as exc:
            logger.exception("Error during checkout")
            return self._fail(CHECKOUT_FAILED_MESSAGE, exc, order, tuple(updated))

        self._enter(CheckoutStatus.SUCCEEDED, SUCCESS_MESSAGE)
        self._schedule_reset()
        return CheckoutResult(
            CheckoutStatus.SUCCEEDED, SUCCESS_MESSAGE, order, tuple(updated)
        )

    # ============ Отложенный сброс ============

    def _schedule_reset(self) -> None:
        self._reset_task = asyncio.create_task(self._reset_later())
        self._reset_task.add_done_callback(self._reset_interrupted)

    async def _reset_later(self) -> None:
        await asyncio.sleep(self.reset_delay)
        self._reset()
        if self.after_reset is not None:
            await self.after_reset()

    def _reset(self) -> None:
        """Succeeded -> Idle и локальный сброс корзины; повторный вызов ничего не делает"""
        if self._status is not CheckoutStatus.SUCCEEDED:
            return
        self._enter(CheckoutStatus.IDLE)
        if self.on_reset is not None:
            self.on_reset()

    def _reset_interrupted(self, task: asyncio.Task) -> None:
        # задачу сняли раньше срока (например, закрылся цикл asyncio.run):
        # сброс делается сразу, без перезагрузки каталога
        if task.cancelled():
            self._reset()

    @property
    def reset_pending(self) -> bool:
        return self._reset_task is not None and not self._reset_task.done()

    async def wait_reset(self) -> None:
        """Ждёт окончания отложенного сброса, если он запланирован"""
        if self._reset_task is not None:
            await asyncio.wait({self._reset_task})

    def cancel(self) -> bool:
        """
        Снимает отложенный сброс (сессия закрывается раньше времени).
        Корзина сбрасывается сразу, каталог не перезагружается.
        """
        if not self.reset_pending:
            return False
        self._reset_task.cancel()
        self._reset()
        return True
