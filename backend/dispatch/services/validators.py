"""
Проверка документа водителя (CPF) и номера машины (placa).
Чистые функции: на любом вводе возвращают False или нормализованную строку, не бросают исключений.
"""
import re
from typing import Optional

_NON_DIGIT = re.compile(r"\D")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")

# Старый формат ABC-1234 и формат Mercosul ABC1D23
LEGACY_PLATE = re.compile(r"^[A-Z]{3}[0-9]{4}$")
REGIONAL_PLATE = re.compile(r"^[A-Z]{3}[0-9][A-Z][0-9]{2}$")

DOCUMENT_LENGTH = 11


def _digits(raw: Optional[str]) -> str:
    if not isinstance(raw, str):
        return ""
    return _NON_DIGIT.sub("", raw)


def normalize_document(raw: Optional[str]) -> str:
    """Только цифры, не длиннее 11."""
    return _digits(raw)[:DOCUMENT_LENGTH]


def _check_digit(digits: str, first_weight: int) -> int:
    total = sum(int(d) * w for d, w in zip(digits, range(first_weight, 1, -1)))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_document(raw: Optional[str]) -> bool:
    digits = _digits(raw)
    if len(digits) != DOCUMENT_LENGTH:
        return False
    if digits == digits[0] * DOCUMENT_LENGTH:
        return False
    first = _check_digit(digits[:9], 10)
    second = _check_digit(digits[:10], 11)
    return int(digits[9]) == first and int(digits[10]) == second


def format_document(raw: Optional[str]) -> str:
    """123.456.789-09 для отображения; неполный документ возвращается как есть (только цифры)."""
    digits = normalize_document(raw)
    if len(digits) != DOCUMENT_LENGTH:
        return digits
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def _plate_chars(raw: Optional[str]) -> str:
    if not isinstance(raw, str):
        return ""
    return _NON_ALNUM.sub("", raw.upper())


def normalize_plate(raw: Optional[str]) -> str:
    """
    Верхний регистр, без разделителей. Старый формат возвращается с дефисом (ABC-1234),
    Mercosul без дефиса (ABC1D23). Нераспознанный ввод обрезается до 7 символов.
    """
    chars = _plate_chars(raw)[:7]
    if LEGACY_PLATE.match(chars):
        return f"{chars[:3]}-{chars[3:]}"
    return chars


def is_valid_plate(raw: Optional[str]) -> bool:
    chars = _plate_chars(raw)
    return bool(LEGACY_PLATE.match(chars) or REGIONAL_PLATE.match(chars))
