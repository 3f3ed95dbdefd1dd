import json
import uuid
from dataclasses import replace
from functools import reduce
from typing import Callable, Iterable, Tuple

from .domain import CartItem, Lesson, StoreState
from .errors import CapacityExhausted, NotFound
from .ftypes import Either, Maybe

SORT_KEYS = ("topic", "location", "price", "spaces")


# ============ Загрузка уроков ============


def parse_lessons(raw: Iterable[dict]) -> Tuple[Lesson, ...]:
    """JSON-записи уроков -> кортеж иммутабельных Lesson"""

    def _to_lesson(item: dict) -> Lesson:
        return Lesson(
            id=int(item["id"]),
            topic=str(item["topic"]),
            location=str(item["location"]),
            price=item["price"],
            spaces=int(item["spaces"]),
        )

    return tuple(map(_to_lesson, raw))


def load_seed(path: str) -> Tuple[Lesson, ...]:
    """Читает файл с уроками для сервиса каталога"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return parse_lessons(data.get("lessons", []) if isinstance(data, dict) else data)


def apply_display_floor(lessons: Tuple[Lesson, ...], floor: int) -> Tuple[Lesson, ...]:
    """
    spaces = max(spaces, floor) для каждого урока.
    Подмена только для показа, сервер об этом не знает.
    """
    return tuple(replace(l, spaces=max(l.spaces, floor)) for l in lessons)


# ============ Поиск ============


def find_lesson(lessons: Tuple[Lesson, ...], lesson_id: int) -> Maybe[Lesson]:
    return Maybe.first(lessons, lambda l: l.id == lesson_id)


def find_entry(cart: Tuple[CartItem, ...], entry_id: str) -> Maybe[CartItem]:
    return Maybe.first(cart, lambda i: i.entry_id == entry_id)


def held_units(cart: Tuple[CartItem, ...], lesson_id: int) -> int:
    """Сколько мест урока сейчас лежит в корзине"""
    return sum(1 for item in cart if item.id == lesson_id)


def _shift_spaces(
    lessons: Tuple[Lesson, ...], lesson_id: int, delta: int
) -> Tuple[Lesson, ...]:
    return tuple(
        replace(l, spaces=l.spaces + delta) if l.id == lesson_id else l for l in lessons
    )


# ============ Операции с корзиной ============


def new_entry_id() -> str:
    return uuid.uuid4().hex


def add_to_cart(
    state: StoreState, lesson_id: int, entry_id: str
) -> Either[Exception, StoreState]:
    """
    Кладёт снимок урока в корзину и списывает одно место.
    Left(NotFound) - урока нет, Left(CapacityExhausted) - мест нет.
    """

    def _take(lesson: Lesson) -> Either[Exception, StoreState]:
        if lesson.spaces <= 0:
            return Either.left(CapacityExhausted(lesson.id))

        # снимок делается уже после списания
        item = CartItem(
            entry_id=entry_id,
            id=lesson.id,
            topic=lesson.topic,
            location=lesson.location,
            price=lesson.price,
            spaces=lesson.spaces - 1,
        )
        return Either.right(
            replace(
                state,
                lessons=_shift_spaces(state.lessons, lesson.id, -1),
                cart=state.cart + (item,),
            )
        )

    return (
        find_lesson(state.lessons, lesson_id)
        .to_either(NotFound("lesson", lesson_id))
        .bind(_take)
    )


def _restore(lessons: Tuple[Lesson, ...], item: CartItem) -> Tuple[Lesson, ...]:
    # урок мог пропасть после перезагрузки каталога - тогда ничего не возвращаем
    if find_lesson(lessons, item.id).is_none():
        return lessons
    return _shift_spaces(lessons, item.id, +1)


def remove_from_cart(state: StoreState, entry_id: str) -> Either[Exception, StoreState]:
    """Возвращает место уроку и удаляет позицию по её entry_id"""

    def _drop(item: CartItem) -> StoreState:
        return replace(
            state,
            lessons=_restore(state.lessons, item),
            cart=tuple(i for i in state.cart if i.entry_id != entry_id),
        )

    return find_entry(state.cart, entry_id).to_either(NotFound("cart entry", entry_id)).map(_drop)


def clear_cart(state: StoreState) -> StoreState:
    lessons = reduce(_restore, state.cart, state.lessons)
    return replace(state, lessons=lessons, cart=())


def reapply_holds(
    lessons: Tuple[Lesson, ...], cart: Tuple[CartItem, ...]
) -> Tuple[Lesson, ...]:
    """После перезагрузки снова списывает места, которые держит корзина"""
    return tuple(
        replace(l, spaces=max(l.spaces - held_units(cart, l.id), 0)) for l in lessons
    )


def loaded_after_holds(
    lessons: Tuple[Lesson, ...], cart: Tuple[CartItem, ...]
) -> Tuple[Tuple[int, int], ...]:
    """
    Точка отсчёта для инварианта мест после перезагрузки.
    Если корзина держит больше, чем пришло с сервера, отсчёт идёт от корзины.
    """
    return tuple((l.id, max(l.spaces, held_units(cart, l.id))) for l in lessons)


def cart_total(cart: Tuple[CartItem, ...]) -> float:
    return reduce(lambda acc, item: acc + item.price, cart, 0)


def capacity_invariant_holds(state: StoreState) -> bool:
    """spaces урока + места в корзине == spaces после последней загрузки"""
    loaded = dict(state.loaded_spaces)
    return all(
        l.spaces + held_units(state.cart, l.id) == loaded.get(l.id, l.spaces)
        for l in state.lessons
    )


# ============ Поиск и сортировка ============


def by_query(query: str) -> Callable[[Lesson], bool]:
    """Подстрока без учёта регистра в topic или location"""
    needle = (query or "").lower()
    return lambda l: needle in l.topic.lower() or needle in l.location.lower()


def sort_key_for(field: str) -> Callable[[Lesson], object]:
    if field not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {field!r}")

    def key(lesson: Lesson):
        value = getattr(lesson, field)
        return value.lower() if isinstance(value, str) else value

    return key


def filtered_and_sorted(
    lessons: Tuple[Lesson, ...], query: str, sort_key: str, order: str
) -> Tuple[Lesson, ...]:
    """
    Фильтр по запросу, затем сортировка (только если sort_key не пустой).
    order == "asc" - по возрастанию, любое другое значение - по убыванию.
    sorted() стабилен, поэтому равные элементы сохраняют порядок каталога;
    на это поведение не стоит полагаться.
    """
    filtered = tuple(filter(by_query(query), lessons))
    if not sort_key:
        return filtered
    return tuple(sorted(filtered, key=sort_key_for(sort_key), reverse=order != "asc"))
