"""
Routine engine — builds a two-part (AM/PM) routine from the product catalog.

generate(profile, preferences) walks a fixed step template, resolves the PM
treatment slot (retinoid only when neither pregnancy-safety nor sensitivity
vetoes it), asks the catalog for candidates that carry every required safety
flag, and keeps the best-scoring product per step.

It degrades instead of failing: a step with no flag-compliant candidate falls
back to any product of that step type, and a step type with no products at
all is left out. Only catalog failures propagate.
"""

import logging
import string
from typing import Optional

from skinfluence.config import Settings
from skinfluence.errors import CatalogNotLoadedError
from skinfluence.schemas import (
    BudgetTier,
    PriceBand,
    Preferences,
    Product,
    Routine,
    RoutineStep,
    SkinProfile,
    StepType,
    WeeklyPlan,
)
from skinfluence.services.catalog import CatalogService

logger = logging.getLogger(__name__)

SERUM_OR_RETINOID = "serum_or_retinoid"

AM_TEMPLATE = (
    StepType.CLEANSER,
    StepType.ESSENCE,
    StepType.SERUM,
    StepType.MOISTURIZER,
    StepType.SUNSCREEN,
)
PM_TEMPLATE = (
    StepType.CLEANSER,
    StepType.ESSENCE,
    SERUM_OR_RETINOID,
    StepType.MOISTURIZER,
)

TEMPLATE_NOTES = (
    "Avoid stacking strong AHA/BHA with retinoid on same night. "
    "Use vitamin C AM on non-exfoliation days."
)

# Scoring weights
BUDGET_MATCH_SCORE = 10.0
FLAG_MATCH_SCORE = 5.0
PROFILE_MATCH_SCORE = 3.0
# Tier-specific price bonus: (preferred band, bonus), checked in order
TIER_PRICE_BONUS = {
    BudgetTier.VALUE: ((PriceBand.LOW, 5.0),),
    BudgetTier.BALANCED: ((PriceBand.MID, 5.0), (PriceBand.LOW, 3.0)),
    BudgetTier.PREMIUM: ((PriceBand.HIGH, 5.0), (PriceBand.MID, 3.0)),
}

ACNE_KEYWORDS = ("niacinamide", "salicylic")
PIGMENTATION_KEYWORDS = ("vitamin c", "ascorbic")

STEP_PHRASES = {
    StepType.CLEANSER: "Gentle cleansing for your skin type",
    StepType.ESSENCE: "Hydrates and preps skin",
    StepType.MOISTURIZER: "Seals in hydration and strengthens barrier",
    StepType.SUNSCREEN: "Essential daily protection",
    StepType.RETINOID: "Anti-aging and pore refinement",
    StepType.EXFOLIANT: "Weekly gentle resurfacing",
}
DEFAULT_STEP_PHRASE = "Matches your skin profile"


def resolve_step_type(slot, profile: SkinProfile, preferences: Preferences) -> StepType:
    """Map a template slot to a concrete step type.

    Pregnancy-safety and sensitivity each veto the retinoid.
    """
    if slot != SERUM_OR_RETINOID:
        return StepType(slot)
    can_use_retinoid = not preferences.safety.pregnancy_safe and not profile.sensitive
    return StepType.RETINOID if can_use_retinoid else StepType.SERUM


def score_product(product: Product, profile: SkinProfile, preferences: Preferences) -> float:
    """Deterministic fit score of a candidate for this user.

    The budget band contributes twice: once as a flat match bonus and again
    through the tier-specific price bonus.
    """
    score = 0.0

    if product.matches_budget(preferences.budget_tier):
        score += BUDGET_MATCH_SCORE

    matching_flags = product.flag_set & preferences.required_flags()
    score += FLAG_MATCH_SCORE * len(matching_flags)

    if profile.sensitive and product.is_fragrance_free:
        score += PROFILE_MATCH_SCORE
    if profile.acne_prone and product.mentions(*ACNE_KEYWORDS):
        score += PROFILE_MATCH_SCORE
    if profile.pigmentation_prone and product.mentions(*PIGMENTATION_KEYWORDS):
        score += PROFILE_MATCH_SCORE

    for band, bonus in TIER_PRICE_BONUS[preferences.budget_tier]:
        if product.price_band == band:
            score += bonus
            break

    return score


def build_explanation(product: Product, step_type: StepType, profile: SkinProfile) -> str:
    reasons: list[str] = []

    if step_type == StepType.SERUM:
        if product.mentions("niacinamide"):
            reasons.append("Controls oil and minimizes pores")
        elif product.mentions("vitamin c"):
            reasons.append("Brightens and evens skin tone")
        else:
            reasons.append("Targeted treatment for your concerns")
    else:
        reasons.append(STEP_PHRASES.get(step_type, DEFAULT_STEP_PHRASE))

    if profile.sensitive and product.is_fragrance_free:
        reasons.append("fragrance-free for sensitivity")
    if product.price_band == PriceBand.LOW:
        reasons.append("great value option")

    # Every word of the joined sentence is capitalized, not just the first
    return string.capwords(", ".join(reasons))


class RoutineEngine:
    """Stateless routine generator over an injected catalog."""

    def __init__(self, catalog: CatalogService, settings: Settings):
        self.catalog = catalog
        self.settings = settings

    def generate(self, profile: SkinProfile, preferences: Preferences) -> Routine:
        if not self.catalog.is_loaded:
            raise CatalogNotLoadedError()

        am = self._build_steps(AM_TEMPLATE, profile, preferences)
        pm = self._build_steps(PM_TEMPLATE, profile, preferences)

        routine = Routine(
            am=am,
            pm=pm,
            weekly=WeeklyPlan.template(),
            rules_version=self.settings.rules_version,
            catalog_version=self.catalog.version,
            overrides={},
        )
        logger.info(
            f"Generated routine | AM: {len(am)}/{len(AM_TEMPLATE)} | "
            f"PM: {len(pm)}/{len(PM_TEMPLATE)} | budget: {preferences.budget_tier.value}"
        )
        return routine

    def select_product(
        self,
        step_type: StepType,
        profile: SkinProfile,
        preferences: Preferences,
    ) -> tuple[Optional[Product], bool]:
        """Best candidate for a step and whether the safety flags were ignored."""
        candidates = self.catalog.filtered(
            step_type=step_type,
            required_flags=preferences.required_flags(),
        )
        used_fallback = False
        if not candidates:
            candidates = self.catalog.by_step_type(step_type)
            used_fallback = bool(candidates)
            if used_fallback:
                logger.warning(
                    f"No {step_type.value} meets the safety flags, "
                    f"falling back to {len(candidates)} non-compliant candidate(s)"
                )

        if not candidates:
            return None, False

        # max() keeps the first of equal scores, so catalog order breaks ties
        best = max(candidates, key=lambda p: score_product(p, profile, preferences))
        return best, used_fallback

    def _build_steps(self, template, profile: SkinProfile, preferences: Preferences) -> tuple[RoutineStep, ...]:
        steps: list[RoutineStep] = []
        for slot in template:
            step_type = resolve_step_type(slot, profile, preferences)
            product, used_fallback = self.select_product(step_type, profile, preferences)
            if product is None:
                logger.warning(f"Catalog has no {step_type.value}, omitting step")
                continue
            steps.append(
                RoutineStep(
                    step_type=step_type,
                    product_id=product.id,
                    alternatives=product.alternatives or (),
                    explanation=build_explanation(product, step_type, profile),
                    used_fallback=used_fallback,
                )
            )
        return tuple(steps)
