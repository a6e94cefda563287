"""
Tests del cálculo de subtotal y total (FactorEngine)
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from invoicing.modules.invoices.factors import FactorEngine
from invoicing.modules.invoices.schemas import Factor


def line(unit_price, quantity, discount_percent=None, duration=None):
    return SimpleNamespace(
        unit_price=Decimal(unit_price),
        quantity=Decimal(quantity),
        discount_percent=None if discount_percent is None else Decimal(discount_percent),
        duration=None if duration is None else Decimal(duration),
    )


def factor(type_, unit, amount, title=None):
    return Factor(title=title, type=type_, unit=unit, amount=Decimal(amount))


@pytest.fixture
def factor_engine():
    return FactorEngine(decimal_places=2)


class TestLineTotal:

    def test_plain_line(self, factor_engine):
        assert factor_engine.line_total(line("12.50", "4")) == Decimal("50")

    def test_discount_reduces_line(self, factor_engine):
        """10% de descuento sobre 3 x 100"""
        assert factor_engine.line_total(line("100", "3", discount_percent="10")) == Decimal("270")

    def test_duration_multiplies_line(self, factor_engine):
        assert factor_engine.line_total(line("30", "2", duration="3")) == Decimal("180")

    def test_full_discount(self, factor_engine):
        assert factor_engine.line_total(line("80", "1", discount_percent="100")) == Decimal("0")


class TestSubtotal:

    def test_empty_items(self, factor_engine):
        assert factor_engine.subtotal([]) == Decimal("0")

    def test_sum_of_lines(self, factor_engine):
        items = [line("100", "1"), line("50", "2", discount_percent="50")]
        assert factor_engine.subtotal(items) == Decimal("150")

    def test_no_float_drift(self, factor_engine):
        items = [line("0.10", "1") for _ in range(3)]
        assert factor_engine.subtotal(items) == Decimal("0.30")


class TestTotal:

    def test_empty_factors_equals_subtotal(self, factor_engine):
        items = [line("120", "1"), line("40", "2")]
        assert factor_engine.total(items, []) == factor_engine.subtotal(items)

    def test_percent_enhancer(self, factor_engine):
        items = [line("200", "1")]
        assert factor_engine.contribution(factor("enhancer", "percent", "10"), Decimal("200")) == Decimal("20")
        assert factor_engine.total(items, [factor("enhancer", "percent", "10")]) == Decimal("220.00")

    def test_price_reducer(self, factor_engine):
        assert factor_engine.contribution(factor("reducer", "price", "15"), Decimal("200")) == Decimal("-15")

    def test_combined_factors(self, factor_engine):
        """Subtotal 200, +10% y -15 fijo: 200 + 20 - 15 = 205"""
        items = [line("100", "2")]
        factors = [factor("enhancer", "percent", "10"), factor("reducer", "price", "15")]
        assert factor_engine.total(items, factors) == Decimal("205")

    def test_factors_apply_to_original_subtotal(self, factor_engine):
        """Dos recargos del 10% suman 20%, no se encadenan (no 21%)"""
        items = [line("100", "1")]
        factors = [factor("enhancer", "percent", "10"), factor("enhancer", "percent", "10")]
        assert factor_engine.total(items, factors) == Decimal("120.00")

    def test_factor_order_does_not_change_total(self, factor_engine):
        items = [line("333", "1")]
        factors = [factor("reducer", "percent", "7"), factor("enhancer", "price", "12.5")]
        assert factor_engine.total(items, factors) == factor_engine.total(items, list(reversed(factors)))

    @pytest.mark.parametrize("type_,unit", [
        ("enhancer", "percent"), ("enhancer", "price"),
        ("reducer", "percent"), ("reducer", "price"),
    ])
    def test_zero_amount_contributes_nothing(self, factor_engine, type_, unit):
        assert factor_engine.contribution(factor(type_, unit, "0"), Decimal("500")) == 0

    def test_only_final_total_is_rounded(self, factor_engine):
        """
        Tres recargos de 0.004 en precio: redondeados por separado darían 0,
        acumulados suman 0.012 y el total redondea a 10.01
        """
        items = [line("10", "1")]
        factors = [factor("enhancer", "price", "0.004") for _ in range(3)]
        assert factor_engine.total(items, factors) == Decimal("10.01")

    def test_half_up_rounding(self, factor_engine):
        assert factor_engine.total([line("0.125", "1")], []) == Decimal("0.13")
