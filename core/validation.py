import re
from typing import Tuple

from .errors import ValidationError
from .ftypes import Either

NAME_RE = re.compile(r"[A-Za-z ]+")
PHONE_RE = re.compile(r"[0-9]{10,}")

NAME_MESSAGE = "Name must contain only letters and spaces"
PHONE_MESSAGE = "Phone must be at least 10 digits"


def validate_name(name: str) -> bool:
    """Только латинские буквы и пробелы, непустая строка"""
    return isinstance(name, str) and NAME_RE.fullmatch(name) is not None


def validate_phone(phone: str) -> bool:
    """10 и более цифр, верхней границы нет"""
    return isinstance(phone, str) and PHONE_RE.fullmatch(phone) is not None


def validate_customer(name: str, phone: str) -> Either[ValidationError, Tuple[str, str]]:
    if not validate_name(name):
        return Either.left(ValidationError("name", NAME_MESSAGE))
    if not validate_phone(phone):
        return Either.left(ValidationError("phone", PHONE_MESSAGE))
    return Either.right((name, phone))
