from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Lesson:
    id: int
    topic: str
    location: str
    price: float
    spaces: int


@dataclass(frozen=True)
class CartItem:
    """Снимок урока на момент добавления в корзину"""

    entry_id: str
    id: int
    topic: str
    location: str
    price: float
    spaces: int


@dataclass(frozen=True)
class Order:
    name: str
    phone: str
    lesson_ids: Tuple[int, ...]
    spaces: int

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "lessonIDs": list(self.lesson_ids),
            "spaces": self.spaces,
        }


@dataclass(frozen=True)
class Event:
    id: str
    ts: str
    name: str
    payload: Dict


@dataclass(frozen=True)
class StoreState:
    """Всё состояние витрины; меняется только через Storefront"""

    lessons: Tuple[Lesson, ...] = ()
    cart: Tuple[CartItem, ...] = ()
    loaded_spaces: Tuple[Tuple[int, int], ...] = ()  # (lesson_id, spaces) после load
    search_query: str = ""
    sort_by: str = ""
    sort_order: str = "asc"
    show_cart: bool = False
    name: str = ""
    phone: str = ""
    order_message: str = ""
    alert: str = ""
    checkout_status: str = "idle"
    last_event: Optional[str] = None
