"""
Plain-text routine rendering — short and detailed variants.

Product names come from the catalog; user overrides take precedence over the
generated pick.
"""

from skinfluence.schemas import Routine, RoutineStep, Session, StepType
from skinfluence.services.catalog import CatalogService
from skinfluence.services.routine_engine import TEMPLATE_NOTES

STEP_DISPLAY_NAMES = {
    StepType.CLEANSER: "Cleanser",
    StepType.ESSENCE: "Essence",
    StepType.SERUM: "Serum",
    StepType.MOISTURIZER: "Moisturizer",
    StepType.SUNSCREEN: "Sunscreen",
    StepType.RETINOID: "Retinoid",
    StepType.EXFOLIANT: "Exfoliant",
    StepType.MASK: "Mask",
}


def step_display_name(step_type) -> str:
    try:
        return STEP_DISPLAY_NAMES[StepType(step_type)]
    except ValueError:
        return str(step_type).capitalize()


def _product_label(routine: Routine, step: RoutineStep, session: Session, catalog: CatalogService) -> str:
    product_id = routine.effective_product_id(step.step_type, session)
    product = catalog.by_id(product_id) if product_id else None
    label = product.display_name if product else product_id
    if routine.has_override(step.step_type):
        label += " (your pick)"
    return label


def _session_title(session: Session) -> str:
    return "☀️ Morning" if session == Session.AM else "🌙 Evening"


def format_routine_short(routine: Routine, catalog: CatalogService) -> str:
    """Short bullet-point summary — concise and scannable."""
    lines: list[str] = []

    for session in (Session.AM, Session.PM):
        steps = routine.steps(session)
        if not steps:
            continue
        lines.append(f"*{_session_title(session)}*")
        for i, step in enumerate(steps, 1):
            label = _product_label(routine, step, session, catalog)
            lines.append(f"  {i}. {step_display_name(step.step_type)}: {label}")
        lines.append("")

    if not lines:
        return "No routine yet."
    return "\n".join(lines).rstrip()


def format_routine_detailed(routine: Routine, catalog: CatalogService) -> str:
    """Full routine with explanations, alternatives and the weekly plan."""
    lines: list[str] = []

    for session in (Session.AM, Session.PM):
        steps = routine.steps(session)
        if not steps:
            continue
        lines.append(f"*{_session_title(session)} Routine — Detailed*")
        lines.append("")
        for i, step in enumerate(steps, 1):
            label = _product_label(routine, step, session, catalog)
            lines.append(f"*{i}. {step_display_name(step.step_type)}*: {label}")
            lines.append(f"  {step.explanation}")
            if step.used_fallback:
                lines.append("  ⚠️ Does not meet all of your safety filters")
            if step.alternatives:
                names = [
                    p.display_name
                    for p in (catalog.by_id(alt) for alt in step.alternatives)
                    if p is not None
                ]
                if names:
                    lines.append(f"  Alternatives: {', '.join(names)}")
            lines.append("")

    weekly = routine.weekly
    lines.append("*📅 Weekly Plan*")
    if weekly.retinoid_nights:
        lines.append(f"  Retinoid nights: {', '.join(weekly.retinoid_nights)}")
    if weekly.exfoliant_days:
        lines.append(f"  Exfoliant days: {', '.join(weekly.exfoliant_days)}")
    if weekly.mask_days:
        lines.append(f"  Mask days: {', '.join(weekly.mask_days)}")
    lines.append("")
    lines.append(f"_{TEMPLATE_NOTES}_")

    return "\n".join(lines)
