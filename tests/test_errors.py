"""Tests for the shared error taxonomy."""

import uuid

import pytest

from errors import (
    ConflictError, ForbiddenError, MarketError, NotFoundError, UnauthenticatedError,
    ValidationError, parse_id
)
from offers import DuplicateOfferError, OfferExpiredError
from reviews import DuplicateReviewError
from users import EmailInUseError


@pytest.mark.parametrize("error_class,status_code", [
    (ValidationError, 400),
    (UnauthenticatedError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 400),
    (MarketError, 500),
])
def test_status_codes(error_class, status_code):
    assert error_class("boom").status_code == status_code


def test_status_code_override():
    error = ValidationError("Busy", status_code=409)
    assert error.status_code == 409
    assert ValidationError("Other").status_code == 400


@pytest.mark.parametrize("error_class", [DuplicateOfferError, DuplicateReviewError, EmailInUseError])
def test_duplicates_are_bad_requests(error_class):
    error = error_class()
    assert isinstance(error, ConflictError)
    assert error.status_code == 400


def test_expired_offer_is_a_validation_error():
    assert isinstance(OfferExpiredError(), ValidationError)


def test_parse_id():
    value = uuid.uuid4()
    assert parse_id(value) is value
    assert parse_id(str(value)) == value


@pytest.mark.parametrize("value", ['abc', '', None, 42])
def test_parse_id_malformed_is_not_found(value):
    with pytest.raises(NotFoundError) as exc:
        parse_id(value, "Product")
    assert exc.value.message == "Product not found"
