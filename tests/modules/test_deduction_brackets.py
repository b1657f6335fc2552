"""
Statutory bracket lookup against the packaged tables and hand-built ones.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from cafe_config.schema import BracketTable, DeductionBracket, DeductionType
from cafe_kernel.exceptions import AmbiguousBracketError, BracketGapError, ComputationError
from cafe_modules.payroll.deductions import DeductionBracketResolver

AS_OF = date(2025, 1, 31)


def bracket(deduction_type, low, high=None, rate=None, fixed=None):
    return DeductionBracket(
        deduction_type=deduction_type,
        min_salary=Decimal(low),
        max_salary=Decimal(high) if high is not None else None,
        rate=Decimal(rate) if rate is not None else None,
        fixed_contribution=Decimal(fixed) if fixed is not None else None,
    )


def with_tables(config, *tables):
    """Configuration whose SSS tables are replaced; other types keep the defaults."""
    kept = tuple(t for t in config.bracket_tables if t.deduction_type is not DeductionType.SSS)
    return replace(config, bracket_tables=kept + tables)


@pytest.fixture
def resolver(config):
    return DeductionBracketResolver(config)


class TestDefaultTables:
    @pytest.mark.parametrize(
        "salary, expected",
        [
            ("10000.00", "450.00"),
            ("9750.00", "450.00"),
            ("9749.99", "427.50"),
            ("3000.00", "180.00"),
            ("45000.00", "1125.00"),
        ],
    )
    def test_sss(self, resolver, salary, expected):
        assert resolver.contribution(DeductionType.SSS, Decimal(salary), AS_OF) == Decimal(expected)

    @pytest.mark.parametrize(
        "salary, expected",
        [("5000.00", "250.00"), ("20000.00", "500.00"), ("33333.33", "833.33"), ("250000.00", "2500.00")],
    )
    def test_philhealth(self, resolver, salary, expected):
        assert resolver.contribution(DeductionType.PHILHEALTH, Decimal(salary), AS_OF) == Decimal(expected)

    @pytest.mark.parametrize(
        "salary, expected",
        [("1000.00", "10.00"), ("1500.00", "15.00"), ("3000.00", "60.00"), ("18000.00", "100.00")],
    )
    def test_pagibig(self, resolver, salary, expected):
        assert resolver.contribution(DeductionType.PAGIBIG, Decimal(salary), AS_OF) == Decimal(expected)

    def test_tax_exempt_band_and_flat_rate(self, resolver):
        assert resolver.contribution(DeductionType.TAX, Decimal("20833.00"), AS_OF) == Decimal("0.00")
        assert resolver.contribution(DeductionType.TAX, Decimal("25000.00"), AS_OF) == Decimal("1250.00")

    def test_salary_is_quantized_before_lookup(self, resolver):
        # 9749.995 rounds HALF_UP into the 9750.00 bracket
        chosen = resolver.resolve(DeductionType.SSS, Decimal("9749.995"), AS_OF)
        assert chosen.min_salary == Decimal("9750.00")

    def test_accepts_type_value(self, resolver):
        assert resolver.contribution("pagibig", Decimal("1000"), AS_OF) == Decimal("10.00")


class TestTableSelection:
    def test_no_table_in_force(self, resolver):
        with pytest.raises(BracketGapError) as exc_info:
            resolver.resolve(DeductionType.SSS, Decimal("10000"), date(2020, 1, 1))
        assert exc_info.value.as_of == date(2020, 1, 1)

    def test_latest_effective_table_wins(self, config):
        revised = BracketTable(
            DeductionType.SSS,
            date(2025, 6, 1),
            (bracket(DeductionType.SSS, "0.00", fixed="999.00"),),
        )
        resolver = DeductionBracketResolver(with_tables(config, *config.tables_for(DeductionType.SSS), revised))

        assert resolver.contribution(DeductionType.SSS, Decimal("10000"), date(2025, 5, 31)) == Decimal("450.00")
        assert resolver.contribution(DeductionType.SSS, Decimal("10000"), date(2025, 6, 1)) == Decimal("999.00")


class TestMalformedTables:
    def test_gap(self, config):
        gapped = BracketTable(
            DeductionType.SSS,
            date(2024, 1, 1),
            (
                bracket(DeductionType.SSS, "0.00", "4999.99", fixed="200.00"),
                bracket(DeductionType.SSS, "6000.00", fixed="300.00"),
            ),
        )
        resolver = DeductionBracketResolver(with_tables(config, gapped))

        with pytest.raises(BracketGapError) as exc_info:
            resolver.contribution(DeductionType.SSS, Decimal("5500"), AS_OF)
        assert exc_info.value.deduction_type == "sss"
        assert exc_info.value.salary == Decimal("5500.00")
        assert "bracket gap" in str(exc_info.value)
        assert resolver.contribution(DeductionType.SSS, Decimal("6000"), AS_OF) == Decimal("300.00")

    def test_ambiguous(self, config):
        overlapping = BracketTable(
            DeductionType.SSS,
            date(2024, 1, 1),
            (
                bracket(DeductionType.SSS, "0.00", "5000.00", fixed="200.00"),
                bracket(DeductionType.SSS, "4000.00", fixed="300.00"),
            ),
        )
        resolver = DeductionBracketResolver(with_tables(config, overlapping))

        with pytest.raises(AmbiguousBracketError) as exc_info:
            resolver.resolve(DeductionType.SSS, Decimal("4500"), AS_OF)
        assert exc_info.value.matches == 2
        assert isinstance(exc_info.value, ComputationError)
