"""Unit tests for the credit card charge ledger"""

import pytest

from clover_checkout.domain.charges import CreditCardChargeLedger
from clover_checkout.domain.exceptions import ChargeNotFoundError, ChargeValidationError, DuplicateChargeError


@pytest.fixture
def ledger(make_order, store):
    return CreditCardChargeLedger(make_order(), store)


def _save(ledger, charge_id="CHARGE1", amount=5000, postal_code="H2X1Y4"):
    return ledger.save_charge(amount, "CAD", "VISA", "4242", "12", "2030", postal_code, charge_id)


def test_save_charge(ledger):
    charge = _save(ledger)

    assert charge.status == "success"
    assert ledger.get_charge("CHARGE1") == charge


def test_save_charge_without_expiry(ledger):
    charge = ledger.save_charge(5000, "CAD", "APPLE_PAY", "0005", None, None, "H2X1Y4", "CHARGE1")

    assert charge.card_exp_month == ""
    assert charge.card_exp_year == ""


def test_duplicate_charge_keeps_first_record(ledger):
    _save(ledger, amount=5000)

    with pytest.raises(DuplicateChargeError):
        _save(ledger, amount=100)

    assert [charge.amount for charge in ledger.all_charges()] == [5000]


@pytest.mark.parametrize("postal_code,amount", [("", 5000), ("H2X1Y4", 0)])
def test_save_charge_validates_input(ledger, postal_code, amount):
    with pytest.raises(ChargeValidationError):
        _save(ledger, amount=amount, postal_code=postal_code)
    assert ledger.all_charges() == []


def test_mark_refunded(ledger):
    _save(ledger)

    assert ledger.mark_refunded("CHARGE1").status == "refunded"
    assert ledger.get_charge("CHARGE1").status == "refunded"


def test_mark_refunded_unknown_charge(ledger):
    with pytest.raises(ChargeNotFoundError):
        ledger.mark_refunded("CHARGE1")

    _save(ledger)
    with pytest.raises(ChargeNotFoundError):
        ledger.mark_refunded("OTHER")


def test_list_charges_hides_card_details(ledger):
    _save(ledger)

    (listed,) = ledger.list_charges()

    assert listed["charge_id"] == "CHARGE1"
    assert "card_last4" not in listed
    assert "card_exp_year" not in listed
