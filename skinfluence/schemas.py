"""
Pydantic schemas — the single source of truth for all data contracts.

Products come from the static catalog, SkinProfile/Preferences come from the
onboarding flow, and Routine is what the engine hands back. JSON uses camelCase
keys (`stepType`, `priceBand`, ...); Python code uses the snake_case attributes.
Every model is frozen: changes are made by building a new value.
"""

from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ── Enums ────────────────────────────────────────────────────────────────────


class StepType(str, enum.Enum):
    CLEANSER = "cleanser"
    ESSENCE = "essence"
    SERUM = "serum"
    MOISTURIZER = "moisturizer"
    SUNSCREEN = "sunscreen"
    RETINOID = "retinoid"
    EXFOLIANT = "exfoliant"
    MASK = "mask"


class SafetyFlag(str, enum.Enum):
    FRAGRANCE_FREE = "fragrance_free"
    EO_FREE = "eo_free"
    ALCOHOL_DENAT_FREE = "alcohol_denat_free"
    PREGNANCY_SAFE = "pregnancy_safe"


class PriceBand(str, enum.Enum):
    LOW = "$"
    MID = "$$"
    HIGH = "$$$"


class BudgetTier(str, enum.Enum):
    """Ordered by price: value < balanced < premium."""

    VALUE = "value"
    BALANCED = "balanced"
    PREMIUM = "premium"

    @property
    def price_bands(self) -> frozenset[PriceBand]:
        return _TIER_PRICE_BANDS[self]


_TIER_PRICE_BANDS = {
    BudgetTier.VALUE: frozenset({PriceBand.LOW}),
    BudgetTier.BALANCED: frozenset({PriceBand.LOW, PriceBand.MID}),
    BudgetTier.PREMIUM: frozenset({PriceBand.MID, PriceBand.HIGH}),
}


class BaseType(str, enum.Enum):
    OILY = "oily"
    COMBINATION = "combination"
    DRY = "dry"
    NORMAL = "normal"


class ProfileSource(str, enum.Enum):
    QUESTIONNAIRE = "questionnaire"
    SCAN = "scan"
    MIXED = "mixed"


class RoutineSize(str, enum.Enum):
    MINIMAL = "minimal"
    CLASSIC = "classic"
    MAXIMAL = "maximal"


class ActivesComfort(str, enum.Enum):
    NEWBIE = "newbie"
    SOME_EXPERIENCE = "some_experience"
    CONFIDENT = "confident"


class Session(str, enum.Enum):
    AM = "am"
    PM = "pm"


# ── Catalog ──────────────────────────────────────────────────────────────────


class Product(DomainModel):
    id: str
    brand: str
    name: str
    step_type: StepType
    flags: tuple[SafetyFlag, ...] = ()
    inci_highlights: tuple[str, ...] = ()
    price_band: PriceBand
    images: tuple[str, ...] = ()
    alternatives: Optional[tuple[str, ...]] = None

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.name}"

    @property
    def flag_set(self) -> frozenset[SafetyFlag]:
        return frozenset(self.flags)

    def has_flag(self, flag: SafetyFlag) -> bool:
        return SafetyFlag(flag) in self.flag_set

    @property
    def is_fragrance_free(self) -> bool:
        return self.has_flag(SafetyFlag.FRAGRANCE_FREE)

    @property
    def is_pregnancy_safe(self) -> bool:
        return self.has_flag(SafetyFlag.PREGNANCY_SAFE)

    def matches_flags(self, required: frozenset[SafetyFlag]) -> bool:
        """Superset rule: the product must carry every required flag."""
        return frozenset(required) <= self.flag_set

    def matches_budget(self, tier: BudgetTier) -> bool:
        return self.price_band in tier.price_bands

    def mentions(self, *keywords: str) -> bool:
        """Case-insensitive substring match over the ingredient highlights."""
        return any(
            keyword in highlight.lower()
            for highlight in self.inci_highlights
            for keyword in keywords
        )

    @property
    def badges(self) -> list[str]:
        badges: list[str] = []
        if self.is_pregnancy_safe:
            badges.append("Pregnancy Safe")
        if self.is_fragrance_free:
            badges.append("Fragrance Free")
        if self.price_band == PriceBand.LOW:
            badges.append("Best Value")
        return badges


class RetailLink(DomainModel):
    retailer: str
    url: str
    price: Optional[str] = None
    currency: Optional[str] = "USD"
    in_stock: bool = True

    @property
    def display_price(self) -> str:
        if self.price is None or self.currency is None:
            return "Check Price"
        symbol = "$" if self.currency == "USD" else ""
        return f"{symbol}{self.price}"


# ── Profile & preferences ────────────────────────────────────────────────────


class SkinProfile(DomainModel):
    base_type: BaseType = BaseType.NORMAL
    sensitive: bool = False
    acne_prone: bool = False
    pigmentation_prone: bool = False
    rosacea_prone: bool = False
    source: ProfileSource = ProfileSource.QUESTIONNAIRE


class SafetyToggles(DomainModel):
    pregnancy_safe: bool = False
    fragrance_free: bool = False
    essential_oil_free: bool = False
    alcohol_denat_free: bool = False

    def required_flags(self) -> frozenset[SafetyFlag]:
        flags: set[SafetyFlag] = set()
        if self.fragrance_free:
            flags.add(SafetyFlag.FRAGRANCE_FREE)
        if self.essential_oil_free:
            flags.add(SafetyFlag.EO_FREE)
        if self.alcohol_denat_free:
            flags.add(SafetyFlag.ALCOHOL_DENAT_FREE)
        if self.pregnancy_safe:
            flags.add(SafetyFlag.PREGNANCY_SAFE)
        return frozenset(flags)


DEFAULT_RETAILERS = ("Amazon", "Sephora", "Olive Young", "YesStyle", "TikTok Shop")


class Preferences(DomainModel):
    budget_tier: BudgetTier = BudgetTier.BALANCED
    safety: SafetyToggles = Field(default_factory=SafetyToggles)
    # Only used for retail links, never for scoring
    retailer_order: tuple[str, ...] = DEFAULT_RETAILERS
    routine_size: RoutineSize = RoutineSize.CLASSIC
    actives_comfort: ActivesComfort = ActivesComfort.NEWBIE

    def required_flags(self) -> frozenset[SafetyFlag]:
        return self.safety.required_flags()


# ── Routine ──────────────────────────────────────────────────────────────────


class RoutineStep(DomainModel):
    step_type: StepType
    product_id: str
    alternatives: tuple[str, ...] = ()
    explanation: str = ""
    used_fallback: bool = Field(
        default=False,
        description="True when no product met the safety flags and the pick ignored them",
    )


class WeeklyPlan(DomainModel):
    retinoid_nights: tuple[str, ...] = ()
    exfoliant_days: tuple[str, ...] = ()
    mask_days: tuple[str, ...] = ()

    @classmethod
    def template(cls) -> "WeeklyPlan":
        return cls(
            retinoid_nights=("Mon", "Thu"),
            exfoliant_days=("Wed",),
            mask_days=("Fri",),
        )

    @property
    def all_scheduled_days(self) -> frozenset[str]:
        return frozenset(self.retinoid_nights + self.exfoliant_days + self.mask_days)

    def is_scheduled_day(self, day: str, step_type: StepType) -> bool:
        schedule = {
            StepType.RETINOID: self.retinoid_nights,
            StepType.EXFOLIANT: self.exfoliant_days,
            StepType.MASK: self.mask_days,
        }
        return day in schedule.get(StepType(step_type), ())


class Routine(DomainModel):
    """Generated routine plus the user's overrides (step type -> product id)."""

    am: tuple[RoutineStep, ...] = ()
    pm: tuple[RoutineStep, ...] = ()
    weekly: WeeklyPlan = Field(default_factory=WeeklyPlan.template)
    rules_version: str = "mock-1"
    catalog_version: str = "v1"
    overrides: dict[StepType, str] = Field(default_factory=lambda: MappingProxyType({}))

    @field_validator("overrides", mode="after")
    @classmethod
    def freeze_overrides(cls, value: dict[StepType, str]) -> Any:
        return MappingProxyType(value)

    @field_serializer("overrides")
    def dump_overrides(self, value: Any) -> dict[StepType, str]:
        return dict(value)

    @classmethod
    def empty(cls) -> "Routine":
        return cls()

    def steps(self, session: Session) -> tuple[RoutineStep, ...]:
        return self.am if Session(session) == Session.AM else self.pm

    def step_for(self, step_type: StepType, session: Session = Session.AM) -> Optional[RoutineStep]:
        step_type = StepType(step_type)
        return next((s for s in self.steps(session) if s.step_type == step_type), None)

    def has_override(self, step_type: StepType) -> bool:
        return StepType(step_type) in self.overrides

    def effective_product_id(
        self, step_type: StepType, session: Optional[Session] = None
    ) -> Optional[str]:
        """Override if present, else the generated step's product (AM before PM)."""
        step_type = StepType(step_type)
        if step_type in self.overrides:
            return self.overrides[step_type]
        sessions = [Session(session)] if session else [Session.AM, Session.PM]
        for current in sessions:
            step = self.step_for(step_type, current)
            if step:
                return step.product_id
        return None

    def with_override(self, step_type: StepType, product_id: str) -> "Routine":
        overrides = {**self.overrides, StepType(step_type): product_id}
        return self.model_copy(update={"overrides": MappingProxyType(overrides)})

    def without_override(self, step_type: StepType) -> "Routine":
        step_type = StepType(step_type)
        overrides = {k: v for k, v in self.overrides.items() if k != step_type}
        return self.model_copy(update={"overrides": MappingProxyType(overrides)})


# ── User record & request bodies ─────────────────────────────────────────────


class UserConsents(DomainModel):
    privacy_policy: bool = False
    image_processing: bool = False
    marketing: bool = False

    @property
    def has_required_consents(self) -> bool:
        return self.privacy_policy and self.image_processing


class UserRecord(DomainModel):
    """What the profile store keeps per user."""

    id: str
    profile: Optional[SkinProfile] = None
    preferences: Preferences = Field(default_factory=Preferences)
    consents: UserConsents = Field(default_factory=UserConsents)
    routine: Optional[Routine] = None

    @property
    def has_completed_onboarding(self) -> bool:
        return self.profile is not None and self.consents.has_required_consents


class RoutineRequest(DomainModel):
    profile: SkinProfile
    preferences: Preferences = Field(default_factory=Preferences)


class OverrideRequest(DomainModel):
    product_id: str
