"""
User repository — in-memory profile store for the lifetime of the process.

Records are immutable; every update builds a new UserRecord and replaces the
stored one in a single assignment.
"""

import logging
from typing import Optional

from skinfluence.errors import (
    ProfileValidationError,
    RoutineNotFoundError,
    UserNotFoundError,
)
from skinfluence.schemas import (
    Preferences,
    Routine,
    SkinProfile,
    StepType,
    UserConsents,
    UserRecord,
)

logger = logging.getLogger(__name__)


def validate_preferences(preferences: Preferences) -> None:
    if not preferences.retailer_order:
        raise ProfileValidationError("Retailer order must list at least one retailer")


def validate_record(record: UserRecord, require_consents: bool = False) -> None:
    if require_consents and not record.consents.has_required_consents:
        raise ProfileValidationError("Privacy policy and image processing consent are required")
    validate_preferences(record.preferences)


class UserRepository:
    """Single store for all user records."""

    def __init__(self):
        self._records: dict[str, UserRecord] = {}

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._records.get(user_id)

    def get_or_create(self, user_id: str) -> UserRecord:
        record = self._records.get(user_id)
        if record is None:
            record = UserRecord(id=user_id)
            self._records[user_id] = record
            logger.info(f"Created new user: {user_id}")
        return record

    def save(self, record: UserRecord, require_consents: bool = False) -> UserRecord:
        validate_record(record, require_consents=require_consents)
        self._records[record.id] = record
        return record

    def clear(self, user_id: str) -> None:
        self._records.pop(user_id, None)

    # ── Field updates ───────────────────────────────────────────────────────

    def update_profile(self, user_id: str, profile: SkinProfile) -> UserRecord:
        record = self.get_or_create(user_id)
        return self.save(record.model_copy(update={"profile": profile}))

    def update_preferences(self, user_id: str, preferences: Preferences) -> UserRecord:
        validate_preferences(preferences)
        record = self.get_or_create(user_id)
        return self.save(record.model_copy(update={"preferences": preferences}))

    def update_consents(self, user_id: str, consents: UserConsents) -> UserRecord:
        record = self.get_or_create(user_id)
        return self.save(record.model_copy(update={"consents": consents}))

    def save_routine(self, user_id: str, routine: Routine) -> UserRecord:
        record = self.get_or_create(user_id)
        return self.save(record.model_copy(update={"routine": routine}))

    # ── Overrides ───────────────────────────────────────────────────────────

    def apply_override(self, user_id: str, step_type: StepType, product_id: str) -> Routine:
        record = self._require_routine(user_id)
        routine = record.routine.with_override(step_type, product_id)
        self.save(record.model_copy(update={"routine": routine}))
        logger.info(f"Override set | User: {user_id} | {StepType(step_type).value} -> {product_id}")
        return routine

    def remove_override(self, user_id: str, step_type: StepType) -> Routine:
        record = self._require_routine(user_id)
        routine = record.routine.without_override(step_type)
        self.save(record.model_copy(update={"routine": routine}))
        return routine

    def _require_routine(self, user_id: str) -> UserRecord:
        record = self._records.get(user_id)
        if record is None:
            raise UserNotFoundError(user_id)
        if record.routine is None:
            raise RoutineNotFoundError(user_id)
        return record
