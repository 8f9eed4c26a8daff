"""
User State Store

In-memory UserState storage keyed by user id. Nothing is persisted: a
restart starts every user over from the initial state.
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from calmify.habits import ensure_today
from calmify.languages import LANGUAGE_MAP
from calmify.user_state import (
    EMERGENCY_RELATIONS,
    AssessmentRecord,
    CheckInRecord,
    EmergencyContact,
    UserState,
    now_ms,
)

logger = logging.getLogger(__name__)

DAY_MS = 86400000


def demo_history(now: Optional[int] = None) -> List[CheckInRecord]:
    """Two sample check-ins so a new dashboard has something to chart."""
    now = now if now is not None else now_ms()
    return [
        CheckInRecord(
            id="1",
            timestamp=now - DAY_MS * 2,
            mood="Anxious",
            stress_level=7,
            energy_level=4,
            analysis="User showed signs of fatigue.",
            recommendations=["Deep breathing", "Sleep early"],
            prediction="Regular sleep schedule increases probability of recovery by 60%.",
        ),
        CheckInRecord(
            id="2",
            timestamp=now - DAY_MS,
            mood="Calm",
            stress_level=3,
            energy_level=7,
            analysis="Improved affect compared to previous day.",
            recommendations=["Maintain routine"],
            prediction="Current routine maintains stability with 85% probability.",
        ),
    ]


class UserStateStore:
    """Holds one UserState per user for the lifetime of the process."""

    def __init__(self, seed_demo_history: bool = True):
        self.seed_demo_history = seed_demo_history
        self._states: Dict[str, UserState] = {}

    def get_or_create(self, user_id: str, today: Optional[date] = None) -> UserState:
        """Get a user's state, creating it on first access. Today's habits are always present."""
        state = self._states.get(user_id)
        if state is None:
            state = UserState(history=demo_history() if self.seed_demo_history else [])
            self._states[user_id] = state
            logger.info(f"✅ [UserStateStore] Created state for user {user_id[:20]}")
        ensure_today(state, today)
        return state

    def update_settings(
        self,
        user_id: str,
        name: Optional[str] = None,
        location: Optional[str] = None,
        emergency_contact: Optional[EmergencyContact] = None,
        language: Optional[str] = None
    ) -> UserState:
        """
        Apply a partial settings update.

        Raises:
            ValueError: If the language or contact relation is not supported
        """
        state = self.get_or_create(user_id)

        if language is not None:
            if language not in LANGUAGE_MAP:
                raise ValueError(f"Unsupported language: {language}")
            state.language = language

        if emergency_contact is not None:
            if emergency_contact.relation not in EMERGENCY_RELATIONS:
                raise ValueError(f"Unsupported relation: {emergency_contact.relation}")
            state.emergency_contact = emergency_contact

        if name is not None:
            state.name = name.strip() or state.name
        if location is not None:
            state.location = location.strip() or None

        return state

    def add_check_in(self, user_id: str, record: CheckInRecord) -> None:
        self.get_or_create(user_id).history.append(record)

    def add_assessment(self, user_id: str, record: AssessmentRecord) -> None:
        self.get_or_create(user_id).assessments.append(record)
