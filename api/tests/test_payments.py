from decimal import Decimal

import pytest

from pos_api.core.errors import ValidationError
from pos_api.services.payments import format_currency, resolve_tenders, with_payment_display


@pytest.mark.parametrize(
    "amount, expected",
    [
        (1500, "$ 1.500,00"),
        ("500.5", "$ 500,50"),
        (Decimal("1234567.891"), "$ 1.234.567,89"),
        (0, "$ 0,00"),
        (-20, "-$ 20,00"),
    ],
)
def test_format_currency(amount, expected):
    assert format_currency(amount) == expected


def test_single_method_defaults_to_cash():
    method, tenders = resolve_tenders(Decimal("100"), None, None)
    assert method == "efectivo"
    assert tenders == [{"method": "efectivo", "amount": Decimal("100.00")}]


def test_split_tenders_mark_header_multiple():
    method, tenders = resolve_tenders(
        Decimal("2000"),
        None,
        [{"method": "efectivo", "amount": 1500}, {"method": "tarjeta_credito", "amount": 500}],
    )
    assert method == "multiple"
    assert [t["method"] for t in tenders] == ["efectivo", "tarjeta_credito"]


def test_single_element_list_is_a_single_method():
    method, _ = resolve_tenders(Decimal("50"), None, [{"method": "transferencia", "amount": 50}])
    assert method == "transferencia"


@pytest.mark.parametrize(
    "payment_method, payment_methods, code",
    [
        ("cheque", None, "INVALID_PAYMENT_METHOD"),
        (None, [{"method": "bitcoin", "amount": 100}], "INVALID_PAYMENT_METHOD"),
        (None, [{"method": "efectivo", "amount": 60}, {"method": "transferencia", "amount": 30}], "PAYMENT_TOTAL_MISMATCH"),
    ],
)
def test_invalid_tenders(payment_method, payment_methods, code):
    with pytest.raises(ValidationError) as excinfo:
        resolve_tenders(Decimal("100"), payment_method, payment_methods)
    assert excinfo.value.code == code


def test_payment_display():
    header = {"id": 1, "payment_method": "multiple"}
    tenders = [{"method": "efectivo", "amount": 1500}, {"method": "tarjeta_credito", "amount": 500.0}]

    result = with_payment_display(header, tenders)

    assert result["payment_method_display"] == "Efectivo: $ 1.500,00, T. Crédito: $ 500,00"
    assert result["payment_methods_formatted"] == [
        {"method": "efectivo", "amount": 1500.0},
        {"method": "tarjeta_credito", "amount": 500.0},
    ]
    assert with_payment_display({"payment_method": "tarjeta_debito"}, [])["payment_method_display"] == "T. Débito"
