"""Certification level policy.

The single lookup table for what each certification level requires and
costs.  The orchestrator, the pricing listing and billing all read it from
here; nothing else branches on the level name.

    simple    → fingerprint
    advanced  → fingerprint + trusted timestamp
    qualified → fingerprint + trusted timestamp + third-party receipt
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from app.core.errors import ValidationError


class CertificationLevel(StrEnum):
    SIMPLE = "simple"
    ADVANCED = "advanced"
    QUALIFIED = "qualified"


# Total order, lowest first.
LEVEL_ORDER: tuple[CertificationLevel, ...] = (
    CertificationLevel.SIMPLE,
    CertificationLevel.ADVANCED,
    CertificationLevel.QUALIFIED,
)


@dataclass(frozen=True, slots=True)
class CertificationRequirements:
    level: CertificationLevel
    needs_timestamp: bool
    needs_external_delivery: bool
    price_cents: int
    title: str
    description: str
    features: tuple[str, ...]
    currency: str = "BRL"
    needs_fingerprint: bool = True

    def steps(self) -> frozenset[str]:
        """Evidentiary steps this level requires."""
        steps = {"fingerprint"} if self.needs_fingerprint else set()
        if self.needs_timestamp:
            steps.add("timestamp")
        if self.needs_external_delivery:
            steps.add("external_delivery")
        return frozenset(steps)


_POLICY_TABLE: dict[CertificationLevel, CertificationRequirements] = {
    CertificationLevel.SIMPLE: CertificationRequirements(
        level=CertificationLevel.SIMPLE,
        needs_timestamp=False,
        needs_external_delivery=False,
        price_cents=290,
        title="Simple certification",
        description="SHA-256 hash plus send and read records",
        features=("Cryptographic hash", "Basic proof of sending", "Read record"),
    ),
    CertificationLevel.ADVANCED: CertificationRequirements(
        level=CertificationLevel.ADVANCED,
        needs_timestamp=True,
        needs_external_delivery=False,
        price_cents=790,
        title="Advanced certification",
        description="RFC 3161 trusted timestamp plus full certificate",
        features=("Everything in Simple", "ICP-Brasil timestamp", "Detailed certificate"),
    ),
    CertificationLevel.QUALIFIED: CertificationRequirements(
        level=CertificationLevel.QUALIFIED,
        needs_timestamp=True,
        needs_external_delivery=True,
        price_cents=1990,
        title="Qualified certification",
        description="Third-party delivery receipt for maximum legal validity",
        features=("Everything in Advanced", "AR Online receipt", "Maximum legal validity"),
    ),
}


def parse_level(value: str | CertificationLevel) -> CertificationLevel:
    try:
        return CertificationLevel(value)
    except ValueError:
        raise ValidationError(
            f"Unknown certification level {value!r}; "
            f"must be one of {[lvl.value for lvl in LEVEL_ORDER]}"
        ) from None


def requirements_for(level: str | CertificationLevel) -> CertificationRequirements:
    """Return the requirements for *level*.

    Raises ``ValidationError`` for unknown levels.
    """
    return _POLICY_TABLE[parse_level(level)]


def satisfies(higher: str | CertificationLevel, lower: str | CertificationLevel) -> bool:
    """Return whether *higher*'s steps are a superset of *lower*'s."""
    return requirements_for(higher).steps() >= requirements_for(lower).steps()


def all_requirements() -> list[CertificationRequirements]:
    return [_POLICY_TABLE[level] for level in LEVEL_ORDER]


def validate_policy_table() -> None:
    """Raise ``RuntimeError`` unless every level covers all levels below it."""
    missing = set(LEVEL_ORDER) - set(_POLICY_TABLE)
    if missing:
        raise RuntimeError(f"Certification levels without policy: {sorted(missing)}")

    for lower, higher in zip(LEVEL_ORDER, LEVEL_ORDER[1:]):
        if not satisfies(higher, lower):
            raise RuntimeError(f"{higher.value!r} does not cover the steps required by {lower.value!r}")
        if _POLICY_TABLE[higher].price_cents < _POLICY_TABLE[lower].price_cents:
            raise RuntimeError(f"{higher.value!r} is priced below {lower.value!r}")


validate_policy_table()
