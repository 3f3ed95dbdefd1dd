"""Pydantic request/response schemas for the lesson catalog API."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from core.domain import Lesson
from Catalog_Service.repository import PlacedOrder


class LessonSchema(BaseModel):
    id: int
    topic: str
    location: str
    price: float
    spaces: int = Field(ge=0)

    @classmethod
    def from_lesson(cls, lesson: Lesson) -> "LessonSchema":
        return cls(
            id=lesson.id,
            topic=lesson.topic,
            location=lesson.location,
            price=lesson.price,
            spaces=lesson.spaces,
        )


class OrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    phone: str
    lesson_ids: List[int] = Field(alias="lessonIDs", min_length=1)
    spaces: int = Field(ge=1)


class OrderResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    phone: str
    lesson_ids: List[int] = Field(alias="lessonIDs")
    spaces: int

    @classmethod
    def from_placed(cls, placed: PlacedOrder) -> "OrderResponse":
        return cls(
            id=placed.id,
            name=placed.order.name,
            phone=placed.order.phone,
            lesson_ids=list(placed.order.lesson_ids),
            spaces=placed.order.spaces,
        )


class SpacesUpdate(BaseModel):
    spaces: int = Field(ge=0)


class UnitsRequest(BaseModel):
    units: int = Field(default=1, ge=1)
