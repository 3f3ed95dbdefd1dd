"""FastAPI app for the lesson catalog: lessons, orders and capacity."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from core.config import Settings, configure_logging, get_settings
from core.domain import Lesson, Order
from core.errors import CapacityExhausted, NotFound
from core.validation import validate_customer
from Catalog_Service.repository import LessonRepository
from Catalog_Service.schemas import (
    LessonSchema,
    OrderRequest,
    OrderResponse,
    SpacesUpdate,
    UnitsRequest,
)

logger = logging.getLogger(__name__)


def _repo(request: Request) -> LessonRepository:
    return request.app.state.repository


def _lesson_or_404(repo: LessonRepository, lesson_id: int) -> Lesson:
    lesson = repo.get(lesson_id).get_or_else(None)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


def create_app(
    repository: Optional[LessonRepository] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Lessons Catalog API")
    app.state.repository = repository or LessonRepository.from_seed(settings.seed_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ----- Lessons -----

    @app.get("/lessons", response_model=List[LessonSchema])
    def list_lessons(request: Request):
        return [LessonSchema.from_lesson(l) for l in _repo(request).list_lessons()]

    @app.get("/lessons/{lesson_id}", response_model=LessonSchema)
    def get_lesson(lesson_id: int, request: Request):
        return LessonSchema.from_lesson(_lesson_or_404(_repo(request), lesson_id))

    @app.put("/lessons/{lesson_id}", response_model=LessonSchema)
    def put_lesson_spaces(lesson_id: int, body: SpacesUpdate, request: Request):
        # абсолютное значение от клиента не записывается: места меняют только
        # заказы и reserve/release
        lesson = _lesson_or_404(_repo(request), lesson_id)
        if body.spaces != lesson.spaces:
            logger.warning(
                "Client spaces %s for lesson %s ignored, server has %s",
                body.spaces,
                lesson_id,
                lesson.spaces,
            )
        return LessonSchema.from_lesson(lesson)

    @app.post("/lessons/{lesson_id}/reserve", response_model=LessonSchema)
    def reserve(lesson_id: int, body: UnitsRequest, request: Request):
        try:
            lesson = _repo(request).reserve(lesson_id, body.units)
        except NotFound:
            raise HTTPException(status_code=404, detail="Lesson not found")
        except CapacityExhausted:
            raise HTTPException(status_code=409, detail="Not enough spaces")
        return LessonSchema.from_lesson(lesson)

    @app.post("/lessons/{lesson_id}/release", response_model=LessonSchema)
    def release(lesson_id: int, body: UnitsRequest, request: Request):
        try:
            lesson = _repo(request).release(lesson_id, body.units)
        except NotFound:
            raise HTTPException(status_code=404, detail="Lesson not found")
        return LessonSchema.from_lesson(lesson)

    # ----- Orders -----

    @app.post("/orders", status_code=201, response_model=OrderResponse)
    def create_order(body: OrderRequest, request: Request):
        validated = validate_customer(body.name, body.phone)
        if validated.is_left:
            raise HTTPException(status_code=422, detail=validated.value.message)
        if body.spaces != len(body.lesson_ids):
            raise HTTPException(
                status_code=422, detail="spaces must equal the number of lessonIDs"
            )

        order = Order(
            name=body.name,
            phone=body.phone,
            lesson_ids=tuple(body.lesson_ids),
            spaces=body.spaces,
        )
        try:
            placed = _repo(request).place_order(order)
        except NotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except CapacityExhausted as exc:
            raise HTTPException(status_code=409, detail=str(exc))

        logger.info("Order %s placed for lessons %s", placed.id, list(order.lesson_ids))
        return OrderResponse.from_placed(placed)

    @app.get("/orders", response_model=List[OrderResponse])
    def list_orders(request: Request):
        return [OrderResponse.from_placed(o) for o in _repo(request).orders()]

    return app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
