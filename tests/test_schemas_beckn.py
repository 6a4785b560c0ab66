"""Tests for Beckn payload validation."""
import math

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from grid_command_center.schemas.beckn import Quantity


@given(st.floats(allow_nan=True, allow_infinity=True))
def test_quantity_accepts_only_finite_non_negative_amounts(amount):
    if math.isfinite(amount) and amount >= 0:
        assert Quantity(amount=amount).value == amount
    else:
        with pytest.raises(ValidationError):
            Quantity(amount=amount)


@pytest.mark.parametrize("amount", ["nan", "inf", "-inf", "1e400", "NaN"])
def test_quantity_rejects_non_finite_strings(amount):
    with pytest.raises(ValidationError, match="finite"):
        Quantity(amount=amount)


@pytest.mark.parametrize("amount", ["abc", "", None])
def test_quantity_rejects_non_numeric(amount):
    with pytest.raises(ValidationError):
        Quantity(amount=amount)


def test_quantity_keeps_amount_as_string():
    quantity = Quantity(amount=12.5, unit="kWh")
    assert quantity.amount == "12.5"
    assert quantity.value == 12.5
