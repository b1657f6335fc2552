"""
Statutory deduction lookup (``cafe_modules.payroll.deductions``).

Responsibility
--------------
Resolve the SSS, PhilHealth, Pag-IBIG and withholding-tax contribution for
a salary from the bracket tables in configuration.

Architecture position
---------------------
**Modules layer** -- pure lookup over ``CafeConfiguration.bracket_tables``.
Ordering, contiguity, rate/fixed exclusivity and "unbounded only last" were
already checked when the configuration was loaded; this module only
selects.

Invariants enforced
-------------------
* The table in force is the one with the greatest ``effective_from`` not
  after the as-of date.
* The salary is quantized to centavos (HALF_UP) before the lookup.
* A bracket yields ``salary * rate`` or its fixed contribution, never both;
  the result is rounded HALF_UP to centavos.

Failure modes
-------------
* ``BracketGapError`` when no table is in force or no bracket covers the
  salary.
* ``AmbiguousBracketError`` when more than one bracket covers it.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from cafe_config.schema import BracketTable, CafeConfiguration, DeductionBracket, DeductionType
from cafe_kernel.db.types import round_money
from cafe_kernel.exceptions import AmbiguousBracketError, BracketGapError
from cafe_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.deductions")


class DeductionBracketResolver:
    """Bracket selection over the configured tables."""

    def __init__(self, config: CafeConfiguration):
        self._tables = {t: config.tables_for(t) for t in DeductionType}

    def table_for(self, deduction_type: DeductionType, as_of: date) -> BracketTable | None:
        in_force = None
        for table in self._tables.get(DeductionType(deduction_type), ()):
            if table.effective_from <= as_of:
                in_force = table
        return in_force

    def resolve(self, deduction_type: DeductionType, salary: Decimal, as_of: date) -> DeductionBracket:
        deduction_type = DeductionType(deduction_type)
        amount = round_money(salary)
        table = self.table_for(deduction_type, as_of)
        if table is None:
            raise BracketGapError(deduction_type.value, amount, as_of)

        matches = [b for b in table.brackets if b.covers(amount)]
        if not matches:
            logger.warning(
                "deduction_bracket_gap",
                extra={"deduction_type": deduction_type.value, "salary": str(amount)},
            )
            raise BracketGapError(deduction_type.value, amount, as_of)
        if len(matches) > 1:
            raise AmbiguousBracketError(deduction_type.value, amount, len(matches))
        return matches[0]

    def contribution(self, deduction_type: DeductionType, salary: Decimal, as_of: date) -> Decimal:
        """Contribution for ``salary``, rounded to centavos."""
        bracket = self.resolve(deduction_type, salary, as_of)
        return round_money(bracket.contribution(round_money(salary)))
