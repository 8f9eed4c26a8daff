"""
High-Stress Alert

Decides whether a check-in must be confirmed by the user before it is
committed, because the emergency contact would be notified.
"""

from dataclasses import dataclass
from typing import Optional

from calmify.user_state import EmergencyContact


@dataclass
class StressAlert:
    """Result of a stress alert check."""
    should_alert: bool
    reason: str
    contact: Optional[EmergencyContact] = None


class StressAlertPolicy:
    """
    Alert when the analysed stress level is critical.

    Rule:
    - stress >= HIGH_STRESS_THRESHOLD and an emergency contact is configured → alert
    - otherwise → no alert
    """

    HIGH_STRESS_THRESHOLD = 8

    def check(
        self,
        stress_level: float,
        emergency_contact: Optional[EmergencyContact] = None
    ) -> StressAlert:
        if stress_level < self.HIGH_STRESS_THRESHOLD:
            return StressAlert(
                should_alert=False,
                reason=f"Stress level {stress_level:g} below threshold {self.HIGH_STRESS_THRESHOLD}"
            )

        if emergency_contact is None or not emergency_contact.is_configured():
            return StressAlert(
                should_alert=False,
                reason=f"Stress level {stress_level:g} is critical but no emergency contact is configured"
            )

        who = emergency_contact.relation.lower()
        if emergency_contact.name:
            who = f"{who} {emergency_contact.name}"
        return StressAlert(
            should_alert=True,
            reason=(
                f"Stress level {stress_level:g} is critical. "
                f"Your {who} will be alerted at {emergency_contact.phone}."
            ),
            contact=emergency_contact
        )
