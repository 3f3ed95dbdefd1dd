import threading
import uuid
from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Tuple

from core.domain import Lesson, Order
from core.errors import CapacityExhausted, NotFound
from core.ftypes import Maybe
from core.transforms import load_seed


@dataclass(frozen=True)
class PlacedOrder:
    id: str
    order: Order


class LessonRepository:
    """
    Уроки и заказы в памяти процесса.
    Все изменения мест идут под одной блокировкой: FastAPI выполняет
    синхронные обработчики в пуле потоков.
    """

    def __init__(self, lessons: Iterable[Lesson]):
        self._lock = threading.Lock()
        self._lessons: Dict[int, Lesson] = {l.id: l for l in lessons}
        self._capacity: Dict[int, int] = {l.id: l.spaces for l in self._lessons.values()}
        self._orders: List[PlacedOrder] = []

    @classmethod
    def from_seed(cls, path: str) -> "LessonRepository":
        return cls(load_seed(path))

    def list_lessons(self) -> Tuple[Lesson, ...]:
        with self._lock:
            return tuple(self._lessons.values())

    def get(self, lesson_id: int) -> Maybe[Lesson]:
        with self._lock:
            return Maybe.of(self._lessons.get(lesson_id))

    def _require(self, lesson_id: int) -> Lesson:
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            raise NotFound("lesson", lesson_id)
        return lesson

    def reserve(self, lesson_id: int, units: int = 1) -> Lesson:
        with self._lock:
            lesson = self._require(lesson_id)
            if lesson.spaces < units:
                raise CapacityExhausted(lesson_id)
            updated = replace(lesson, spaces=lesson.spaces - units)
            self._lessons[lesson_id] = updated
            return updated

    def release(self, lesson_id: int, units: int = 1) -> Lesson:
        """Возвращает места, но не больше исходной вместимости"""
        with self._lock:
            lesson = self._require(lesson_id)
            spaces = min(lesson.spaces + units, self._capacity[lesson_id])
            updated = replace(lesson, spaces=spaces)
            self._lessons[lesson_id] = updated
            return updated

    def place_order(self, order: Order) -> PlacedOrder:
        """
        Списывает по одному месту на каждый id из заказа.
        Всё или ничего: при нехватке хотя бы у одного урока ничего не списывается.
        """
        wanted = Counter(order.lesson_ids)
        with self._lock:
            for lesson_id, units in wanted.items():
                if self._require(lesson_id).spaces < units:
                    raise CapacityExhausted(lesson_id)
            for lesson_id, units in wanted.items():
                lesson = self._lessons[lesson_id]
                self._lessons[lesson_id] = replace(lesson, spaces=lesson.spaces - units)
            placed = PlacedOrder(id=uuid.uuid4().hex, order=order)
            self._orders.append(placed)
            return placed

    def orders(self) -> Tuple[PlacedOrder, ...]:
        with self._lock:
            return tuple(self._orders)
