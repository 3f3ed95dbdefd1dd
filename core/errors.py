class StoreError(Exception):
    """Базовая ошибка витрины"""


class ValidationError(StoreError):
    """Неверное имя или телефон; состояние не меняется"""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class CapacityExhausted(StoreError):
    def __init__(self, lesson_id: int):
        super().__init__(f"Lesson {lesson_id} has no spaces left")
        self.lesson_id = lesson_id


class NotFound(StoreError):
    def __init__(self, kind: str, key):
        super().__init__(f"{kind} '{key}' not found")
        self.kind = kind
        self.key = key


class CartLocked(StoreError):
    """Корзина заблокирована на время оформления заказа"""

    def __init__(self):
        super().__init__("Cart is locked while checkout is in progress")


class NetworkError(StoreError):
    """Ошибка обращения к бэкенду каталога"""


class BackendConnectionError(NetworkError):
    pass


class BackendStatusError(NetworkError):
    """Бэкенд ответил не-2xx статусом"""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class BackendNotFoundError(BackendStatusError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class BackendRequestError(BackendStatusError):
    pass
