"""
Break policy resolution (``cafe_modules.scheduling.breaks``).

Responsibility
--------------
Maps a shift length to the breaks it is entitled to, from a table of
policies keyed by minimum shift length.

Selection rule: the single policy with the greatest ``min_shift_minutes``
that does not exceed the shift length.  When several policies share that
minimum, the first one in table order wins.  Policies are never merged.

Architecture position
---------------------
**Modules layer** -- pure function of configuration.  No I/O, no session.

Failure modes
-------------
* ``ValidationError`` for a negative shift length.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from cafe_config.schema import BreakPolicy, BreakSpec
from cafe_kernel.exceptions import ValidationError


class BreakPolicyResolver:
    """Resolve break entitlements for a shift length."""

    def __init__(self, policies: Sequence[BreakPolicy]):
        self._policies = tuple(policies)

    def policy_for(self, shift_minutes: int) -> BreakPolicy | None:
        if shift_minutes < 0:
            raise ValidationError(f"Shift length must be non-negative, got {shift_minutes}")
        selected: BreakPolicy | None = None
        for policy in self._policies:
            if policy.min_shift_minutes > shift_minutes:
                continue
            # Strictly greater keeps the first of equal minimums
            if selected is None or policy.min_shift_minutes > selected.min_shift_minutes:
                selected = policy
        return selected

    def resolve(self, shift_minutes: int) -> tuple[BreakSpec, ...]:
        """Ordered break specs for a shift of ``shift_minutes``.  Zero length gets none."""
        if shift_minutes == 0:
            return ()
        policy = self.policy_for(shift_minutes)
        return policy.breaks if policy is not None else ()

    def required_breaks(self, shift_minutes: int) -> tuple[BreakSpec, ...]:
        return tuple(spec for spec in self.resolve(shift_minutes) if spec.required)

    def suggested_breaks(
        self,
        shift_minutes: int,
        existing_types: Iterable[str] = (),
    ) -> tuple[BreakSpec, ...]:
        """Entitled breaks whose type the shift does not have yet."""
        present = {getattr(t, "value", t) for t in existing_types}
        return tuple(
            spec for spec in self.resolve(shift_minutes) if spec.break_type not in present
        )
