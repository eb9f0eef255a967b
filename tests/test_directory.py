"""Tests for customer lookup by phone."""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from app.services.directory import DirectoryService, normalize_phone, phone_digits


def params(call) -> dict:
    return call.args[0].compile(dialect=postgresql.dialect()).params


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+91 98765 43210", "+919876543210"),
        ("+91-98765-43210", "+919876543210"),
        ("(022) 2345-6789", "02223456789"),
        ("9876543210", "9876543210"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_phone_digits_ignores_plus_and_separators():
    assert phone_digits("+91 98765 43210") == phone_digits("919876543210") == "919876543210"


@pytest.mark.asyncio
async def test_new_customer_is_stored_with_normalized_phone():
    lookup = MagicMock()
    lookup.mappings.return_value.first.return_value = None
    created = MagicMock()
    created.mappings.return_value.one.return_value = {"id": uuid4(), "phone": "+919876543210"}
    db = AsyncMock()
    db.execute.side_effect = [lookup, created]

    customer = await DirectoryService(db).find_or_create_customer(
        uuid4(), "Meera Shah", "+91 98765 43210"
    )

    select_call, insert_call = db.execute.await_args_list
    assert "919876543210" in params(select_call).values()
    assert params(insert_call)["phone"] == "+919876543210"
    assert params(insert_call)["last_name"] == "Shah"
    assert customer["phone"] == "+919876543210"


@pytest.mark.asyncio
async def test_existing_customer_is_reused():
    existing = {"id": uuid4(), "phone": "+919876543210"}
    lookup = MagicMock()
    lookup.mappings.return_value.first.return_value = existing
    db = AsyncMock()
    db.execute.return_value = lookup

    customer = await DirectoryService(db).find_or_create_customer(
        uuid4(), "Meera Shah", "91-98765-43210", email="meera@example.com"
    )

    assert customer == existing
    db.execute.assert_awaited_once()
