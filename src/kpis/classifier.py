"""Tier ladder classification.

Pure functions: nothing in this module touches the database. Values are
handled as ``Decimal`` so that boundary comparisons (``value == standard``)
are exact.
"""
from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from kpis.exceptions import InvariantViolation, ValidationError

MINIMUM_RATIO = Decimal("0.7")
STRETCH_RATIO = Decimal("1.3")


class Achievement(enum.IntEnum):
    """Ordinal position of a value on the tier ladder."""

    # Only produced when the metric to classify against no longer exists.
    UNCLASSIFIED = -1
    BELOW_MINIMUM = 0
    AT_MINIMUM = 1
    AT_STANDARD = 2
    AT_STRETCH = 3

    @property
    def status(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    Achievement.UNCLASSIFIED: "none",
    Achievement.BELOW_MINIMUM: "below",
    Achievement.AT_MINIMUM: "minimum",
    Achievement.AT_STANDARD: "standard",
    Achievement.AT_STRETCH: "stretch",
}


def to_decimal(value, field: str = "value") -> Decimal:
    """Coerce ``value`` to a finite Decimal or raise ``ValidationError``."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field}: valeur numerique attendue.")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"{field}: valeur numerique attendue.") from None
    if not result.is_finite():
        raise ValidationError(f"{field}: valeur numerique attendue.")
    return result


def round_half_up(value: Decimal) -> Decimal:
    """Round to the nearest integer, halves away from zero."""
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Tiers:
    minimum: Decimal
    standard: Decimal
    stretch: Decimal

    @classmethod
    def derive(cls, standard, minimum=None, stretch=None) -> "Tiers":
        """Build tiers from a standard target, deriving whichever bound is omitted.

        minimum = round(standard * 0.7), stretch = round(standard * 1.3).
        Supplied bounds are kept as is and the ordering is checked afterwards.
        """
        standard = to_decimal(standard, "standard_target")
        if minimum is None:
            minimum = round_half_up(standard * MINIMUM_RATIO)
        if stretch is None:
            stretch = round_half_up(standard * STRETCH_RATIO)
        tiers = cls(
            minimum=to_decimal(minimum, "minimum_target"),
            standard=standard,
            stretch=to_decimal(stretch, "stretch_target"),
        )
        tiers.validate()
        return tiers

    @classmethod
    def of(cls, metric) -> "Tiers":
        return cls(
            minimum=Decimal(metric.minimum_target),
            standard=Decimal(metric.standard_target),
            stretch=Decimal(metric.stretch_target),
        )

    def validate(self) -> None:
        for field, value in (
            ("minimum_target", self.minimum),
            ("standard_target", self.standard),
            ("stretch_target", self.stretch),
        ):
            if value < 0:
                raise ValidationError(f"{field}: l'objectif ne peut pas etre negatif.")
        if not (self.minimum <= self.standard <= self.stretch):
            raise InvariantViolation(
                "Les objectifs doivent respecter minimum <= standard <= stretch "
                f"(recu {self.minimum} / {self.standard} / {self.stretch})."
            )

    def pro_rated(self, days: int) -> "Tiers":
        """Spread monthly tiers evenly over ``days`` calendar days."""
        return Tiers(
            minimum=self.minimum / days,
            standard=self.standard / days,
            stretch=self.stretch / days,
        )


def classify(value, tiers: Tiers) -> Achievement:
    """Place ``value`` on the ladder. Boundary values belong to the higher tier."""
    value = to_decimal(value)
    if value >= tiers.stretch:
        return Achievement.AT_STRETCH
    if value >= tiers.standard:
        return Achievement.AT_STANDARD
    if value >= tiers.minimum:
        return Achievement.AT_MINIMUM
    return Achievement.BELOW_MINIMUM


def progress_percentage(value, standard) -> int:
    """Percentage of the standard target reached, not capped at 100.

    A zero standard target has no meaningful ratio and reports 0.
    """
    value = to_decimal(value)
    standard = to_decimal(standard, "standard_target")
    if standard == 0:
        return 0
    return int(round_half_up(value / standard * 100))


def _ratio(completed: int, total: int) -> dict:
    percentage = int(round_half_up(Decimal(completed) * 100 / total)) if total else 0
    return {"total": total, "completed": completed, "percentage": percentage}


def completion_summary(definitions: Iterable) -> dict:
    """Share of metrics whose current value reached the standard target.

    Returns the overall ratio plus one entry per category that has metrics.
    """
    total = completed = 0
    per_category: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    for metric in definitions:
        done = Decimal(metric.current_value) >= Decimal(metric.standard_target)
        total += 1
        completed += done
        per_category[metric.category][0] += 1
        per_category[metric.category][1] += done

    summary = _ratio(completed, total)
    summary["by_category"] = {
        category: _ratio(cat_completed, cat_total)
        for category, (cat_total, cat_completed) in per_category.items()
    }
    return summary
