"""
Cálculo de subtotal y total de una factura.

Todos los montos se acumulan con ``Decimal``. Solo se redondea el total
final (ROUND_HALF_UP a ``CURRENCY_DECIMAL_PLACES``); ni las líneas ni las
contribuciones de los factores se redondean por separado.

Cada factor se aplica contra el subtotal original, no contra un total
acumulado: ``total = subtotal + sum(contribuciones)``.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from invoicing.core.config import settings
from invoicing.modules.invoices.schemas import Factor, FactorType, FactorUnit

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    # str() avoids binary float artifacts (0.1 -> 0.1000000000000000055...)
    return Decimal(str(value))


class FactorEngine:
    """Motor puro de totales: no consulta la base de datos"""

    def __init__(self, decimal_places: Optional[int] = None):
        places = settings.CURRENCY_DECIMAL_PLACES if decimal_places is None else decimal_places
        self.quantum = Decimal(1).scaleb(-places)

    def quantize(self, amount: Decimal) -> Decimal:
        return amount.quantize(self.quantum, rounding=ROUND_HALF_UP)

    @staticmethod
    def line_total(item: Any) -> Decimal:
        """unit_price * quantity * duration, menos discount_percent / 100 de ese producto"""
        gross = (
            to_decimal(item.unit_price)
            * to_decimal(item.quantity)
            * to_decimal(getattr(item, "duration", None), ONE)
        )
        discount = to_decimal(item.discount_percent) / HUNDRED * gross
        return gross - discount

    def subtotal(self, items: Iterable[Any]) -> Decimal:
        return sum((self.line_total(item) for item in items), ZERO)

    @staticmethod
    def contribution(factor: Factor, subtotal: Decimal) -> Decimal:
        amount = to_decimal(factor.amount)
        if factor.unit == FactorUnit.PRICE:
            value = amount
        else:
            value = amount / HUNDRED * subtotal
        return -value if factor.type == FactorType.REDUCER else value

    def total(self, items: Iterable[Any], factors: Iterable[Factor]) -> Decimal:
        subtotal = self.subtotal(items)
        adjustments = sum((self.contribution(factor, subtotal) for factor in factors), ZERO)
        return self.quantize(subtotal + adjustments)
