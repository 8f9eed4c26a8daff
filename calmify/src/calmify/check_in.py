"""
Bio Check-In

Turns captured media (face snapshot, voice recording) and a text note into
a CheckInRecord via the AI analyser. A record with critical stress is held
as pending until the user confirms the alert; only then is it committed to
history.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from calmify.gemini_service import AnalysisResponse, GeminiService
from calmify.habits import completed_labels, ensure_today
from calmify.stress_alert import StressAlert, StressAlertPolicy
from calmify.user_state import CheckInRecord, now_ms
from calmify.user_store import UserStateStore

logger = logging.getLogger(__name__)


class CheckInError(ValueError):
    """Raised for invalid check-in input."""


def decode_media(payload: Optional[str], default_mime: str) -> Tuple[Optional[str], str]:
    """
    Normalize captured media to bare base64.

    Accepts either a data URL ("data:image/jpeg;base64,...") or raw base64.

    Returns:
        (base64 data or None, mime type)

    Raises:
        CheckInError: If the payload is not valid base64
    """
    if not payload:
        return None, default_mime

    mime = default_mime
    data = payload.strip()
    if data.startswith("data:") and "," in data:
        header, data = data.split(",", 1)
        mime = header.split(";")[0].replace("data:", "") or default_mime

    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CheckInError(f"Invalid base64 media ({mime})") from e

    return data, mime


@dataclass
class CheckInResult:
    record: CheckInRecord
    alert: StressAlert
    committed: bool


class PendingCheckIns:
    """
    High-stress check-ins waiting for the user's confirmation.

    A user has at most one pending check-in; holding a new one replaces it.
    A confirmed check-in is stamped with the commit time so history stays
    chronological.
    """

    def __init__(self, store: UserStateStore):
        self.store = store
        self._records: Dict[str, CheckInRecord] = {}

    def hold(self, user_id: str, record: CheckInRecord) -> None:
        replaced = self._records.get(user_id)
        if replaced is not None:
            logger.info(f"🔁 [CheckIn] Pending check-in {replaced.id} replaced by {record.id}")
        self._records[user_id] = record

    def get(self, user_id: str) -> Optional[CheckInRecord]:
        return self._records.get(user_id)

    def _take(self, user_id: str, record_id: str) -> CheckInRecord:
        record = self._records.get(user_id)
        if record is None or record.id != record_id:
            raise KeyError(record_id)
        del self._records[user_id]
        return record

    def acknowledge(self, user_id: str, record_id: str) -> CheckInRecord:
        """
        Commit a pending check-in after the user confirmed the alert.

        Raises:
            KeyError: If no such pending check-in exists
        """
        record = replace(self._take(user_id, record_id), timestamp=now_ms())
        self.store.add_check_in(user_id, record)
        logger.info(f"✅ [CheckIn] High-stress check-in {record_id} acknowledged")
        return record

    def discard(self, user_id: str, record_id: str) -> CheckInRecord:
        """Drop a pending check-in without committing it."""
        return self._take(user_id, record_id)


class CheckInService:
    """Runs check-ins and gates critical ones behind a confirmation."""

    def __init__(
        self,
        store: UserStateStore,
        analyzer: GeminiService,
        alert_policy: Optional[StressAlertPolicy] = None,
        pending: Optional[PendingCheckIns] = None
    ):
        self.store = store
        self.analyzer = analyzer
        self.alert_policy = alert_policy or StressAlertPolicy()
        self.pending_check_ins = pending or PendingCheckIns(store)

    async def analyze(
        self,
        user_id: str,
        text_input: str = "",
        image: Optional[str] = None,
        audio: Optional[str] = None
    ) -> CheckInResult:
        """
        Analyze a check-in and commit it unless a stress alert must be confirmed.

        Raises:
            CheckInError: If no input was provided or media is malformed
            AnalysisError: If the AI analysis fails
        """
        text_input = (text_input or "").strip()
        image_b64, image_mime = decode_media(image, "image/jpeg")
        audio_b64, audio_mime = decode_media(audio, "audio/wav")

        if not (text_input or image_b64 or audio_b64):
            raise CheckInError("Provide a note, a snapshot or a voice recording")

        state = self.store.get_or_create(user_id)
        habits_done = completed_labels(ensure_today(state))

        analysis = await self.analyzer.analyze_check_in(
            text_input,
            image_b64,
            audio_b64,
            state.language,
            habits_done,
            image_mime=image_mime,
            audio_mime=audio_mime
        )
        record = self._build_record(analysis, habits_done)

        alert = self.alert_policy.check(record.stress_level, state.emergency_contact)
        if alert.should_alert:
            self.pending_check_ins.hold(user_id, record)
            logger.warning(f"⚠️ [CheckIn] High stress ({record.stress_level:g}) - awaiting confirmation")
            return CheckInResult(record=record, alert=alert, committed=False)

        self.store.add_check_in(user_id, record)
        return CheckInResult(record=record, alert=alert, committed=True)

    def _build_record(self, analysis: AnalysisResponse, habits_done) -> CheckInRecord:
        return CheckInRecord(
            mood=analysis.mood,
            stress_level=analysis.stress_level,
            energy_level=analysis.energy_level,
            analysis=analysis.summary,
            recommendations=list(analysis.recommendations),
            habits_completed=list(habits_done),
            prediction=analysis.prediction or None
        )

    def pending(self, user_id: str) -> Optional[CheckInRecord]:
        return self.pending_check_ins.get(user_id)

    def acknowledge(self, user_id: str, record_id: str) -> CheckInRecord:
        return self.pending_check_ins.acknowledge(user_id, record_id)

    def discard(self, user_id: str, record_id: str) -> CheckInRecord:
        return self.pending_check_ins.discard(user_id, record_id)
