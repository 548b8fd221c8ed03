"""Payment tenders shared by sales and deliveries."""
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from pos_api.core.errors import ValidationError

CASH = "efectivo"
ACCOUNT = "cuenta_corriente"
MULTIPLE = "multiple"

PAYMENT_METHOD_LABELS = {
    "efectivo": "Efectivo",
    "tarjeta_debito": "T. Débito",
    "tarjeta_credito": "T. Crédito",
    "transferencia": "Transferencia",
    "cuenta_corriente": "Cta. Corriente",
}
PAYMENT_METHODS = tuple(PAYMENT_METHOD_LABELS)

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def payment_method_label(method: str) -> str:
    return PAYMENT_METHOD_LABELS.get(method, method)


def format_currency(amount: Any) -> str:
    """Render an amount the way Argentine pesos are printed: ``$ 1.234,56``."""
    value = money(amount)
    sign = "-" if value < 0 else ""
    integer, _, cents = f"{abs(value):,.2f}".partition(".")
    return f"{sign}$ {integer.replace(',', '.')},{cents}"


def resolve_tenders(
    total: Decimal,
    payment_method: str | None,
    payment_methods: list[dict] | None,
) -> tuple[str, list[dict]]:
    """Header payment method plus the tender rows to persist.

    A single method becomes one tender for the whole total; a list of tenders
    marks the header as ``multiple`` and must add up to the total.
    """
    if payment_methods:
        tenders = [{"method": t["method"], "amount": money(t["amount"])} for t in payment_methods]
        for tender in tenders:
            if tender["method"] not in PAYMENT_METHODS:
                raise ValidationError(f"Método de pago inválido: {tender['method']}", code="INVALID_PAYMENT_METHOD")
            if tender["amount"] <= 0:
                raise ValidationError("El monto de cada pago debe ser mayor a 0", code="INVALID_PAYMENT_AMOUNT")
        paid = sum((t["amount"] for t in tenders), Decimal("0"))
        if abs(paid - money(total)) > CENT:
            raise ValidationError(
                f"La suma de los pagos ({format_currency(paid)}) no coincide con el total ({format_currency(total)})",
                code="PAYMENT_TOTAL_MISMATCH",
            )
        if len(tenders) == 1:
            return tenders[0]["method"], tenders
        return MULTIPLE, tenders

    method = payment_method or CASH
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Método de pago inválido: {method}", code="INVALID_PAYMENT_METHOD")
    return method, [{"method": method, "amount": money(total)}]


def tender_total(tenders: Iterable[dict], method: str) -> Decimal:
    return sum((money(t["amount"]) for t in tenders if t["method"] == method), Decimal("0"))


def with_payment_display(header: dict, tenders: list[dict]) -> dict:
    """Attach the formatted tender list and a one-line summary to a header row."""
    formatted = [{"method": t["method"], "amount": float(money(t["amount"]))} for t in tenders]
    result = dict(header)
    result["payment_methods_formatted"] = formatted
    if header.get("payment_method") == MULTIPLE:
        result["payment_method_display"] = ", ".join(
            f"{payment_method_label(t['method'])}: {format_currency(t['amount'])}" for t in formatted
        )
    else:
        result["payment_method_display"] = payment_method_label(header.get("payment_method"))
    return result
