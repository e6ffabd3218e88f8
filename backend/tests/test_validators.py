"""CPF водителя и placa машины."""
import pytest

from dispatch.services.validators import (
    format_document,
    is_valid_document,
    is_valid_plate,
    normalize_document,
    normalize_plate,
)

VALID_CPF = "52998224725"


def test_valid_document():
    assert is_valid_document(VALID_CPF)
    assert is_valid_document("529.982.247-25")


@pytest.mark.parametrize("position", [9, 10])
def test_changed_check_digit_is_invalid(position):
    digits = list(VALID_CPF)
    digits[position] = str((int(digits[position]) + 1) % 10)
    assert not is_valid_document("".join(digits))


@pytest.mark.parametrize("document", ["62998224725", "52098224725"])
def test_changed_body_digit_is_invalid(document):
    assert not is_valid_document(document)


@pytest.mark.parametrize("document", ["11111111111", "00000000000", "1234567890", "", None, "abc"])
def test_rejected_documents(document):
    assert not is_valid_document(document)


def test_normalize_and_format_document():
    assert normalize_document("529.982.247-25") == VALID_CPF
    assert normalize_document("529982247251234") == VALID_CPF
    assert normalize_document(None) == ""
    assert format_document(VALID_CPF) == "529.982.247-25"
    assert format_document("123") == "123"


def test_legacy_plate():
    assert normalize_plate("ABC1234") == "ABC-1234"
    assert normalize_plate("abc-1234") == "ABC-1234"
    assert is_valid_plate("ABC1234")
    assert is_valid_plate("ABC-1234")


def test_regional_plate():
    assert is_valid_plate("ABC1D23")
    assert normalize_plate("abc1d23") == "ABC1D23"


@pytest.mark.parametrize("plate", ["ABC12", "1234ABC", "AB12345", "", None])
def test_invalid_plate(plate):
    assert not is_valid_plate(plate)


def test_unrecognized_plate_is_truncated():
    assert normalize_plate("XYZ12AB99") == "XYZ12AB"
    assert normalize_plate("ab") == "AB"
