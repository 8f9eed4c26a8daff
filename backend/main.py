"""
FastAPI Backend for Calmify - AI Mental Wellness Companion

Provides REST API endpoints for:
- Dashboard overview and daily habits
- Multimodal bio check-ins analysed by Gemini, with high-stress confirmation
- AI chat companion (plain and SSE streaming)
- PHQ-9 / GAD-7 screening questionnaires
- Consultation doctor directory
- Profile and emergency contact settings
"""

from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
import os
import sys
import json
import time

from lib.logger import setup_logging, get_logger

setup_logging(use_colors=True)

logger = get_logger("backend.main")
checkin_logger = get_logger("backend.checkin")
chat_logger = get_logger("backend.chat")

# Add the calmify package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)
package_src = os.path.join(project_root, 'calmify', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.auth import get_current_user

from calmify import assessment
from calmify.chat_companion import ChatCompanion, ChatError, ChatSessionStore, DISCLAIMER
from calmify.check_in import CheckInError, CheckInService, PendingCheckIns, decode_media
from calmify.consultation import CRISIS_HOTLINE, get_doctor, search_doctors
from calmify.dashboard import build_overview
from calmify.gemini_service import AnalysisError, GeminiService
from calmify.habits import ensure_today, toggle_habit
from calmify.languages import LANGUAGE_MAP
from calmify.user_state import EmergencyContact, to_dict
from calmify.user_store import UserStateStore

# Singletons shared by all requests
_store: Optional[UserStateStore] = None
_pending_check_ins: Optional[PendingCheckIns] = None
_chat_sessions: Optional[ChatSessionStore] = None
_gemini_service: Optional[GeminiService] = None
_check_in_service: Optional[CheckInService] = None
_chat_companion: Optional[ChatCompanion] = None


def get_store() -> UserStateStore:
    """Get or create the in-memory user state store."""
    global _store
    if _store is None:
        _store = UserStateStore()
    return _store


def get_pending_check_ins(store: UserStateStore = Depends(get_store)) -> PendingCheckIns:
    """High-stress check-ins awaiting confirmation. Usable without an API key."""
    global _pending_check_ins
    if _pending_check_ins is None:
        _pending_check_ins = PendingCheckIns(store)
    return _pending_check_ins


def get_chat_sessions() -> ChatSessionStore:
    global _chat_sessions
    if _chat_sessions is None:
        _chat_sessions = ChatSessionStore()
    return _chat_sessions


def get_gemini_service() -> GeminiService:
    """Get or create the Gemini service. 503 when no API key is configured."""
    global _gemini_service
    if _gemini_service is None:
        try:
            _gemini_service = GeminiService()
        except ValueError as e:
            logger.warning("Gemini service not available", data={"error": str(e)})
            raise HTTPException(status_code=503, detail="AI service not configured")
    return _gemini_service


def get_check_in_service(
    store: UserStateStore = Depends(get_store),
    service: GeminiService = Depends(get_gemini_service),
    pending: PendingCheckIns = Depends(get_pending_check_ins)
) -> CheckInService:
    global _check_in_service
    if _check_in_service is None:
        _check_in_service = CheckInService(store, service, pending=pending)
    return _check_in_service


def get_chat_companion(
    service: GeminiService = Depends(get_gemini_service),
    sessions: ChatSessionStore = Depends(get_chat_sessions)
) -> ChatCompanion:
    global _chat_companion
    if _chat_companion is None:
        _chat_companion = ChatCompanion(service, sessions=sessions)
    return _chat_companion


app = FastAPI(
    title="Calmify API",
    description="REST API for the Calmify AI mental wellness companion",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv(
        "CALMIFY_CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000"
    ).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== Pydantic Models ====================

class EmergencyContactModel(BaseModel):
    name: str = ""
    phone: str = ""
    relation: str = "Parent"


class SettingsUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    emergency_contact: Optional[EmergencyContactModel] = None
    language: Optional[str] = None


class LanguageUpdate(BaseModel):
    language: str


class CheckInRequest(BaseModel):
    text: str = ""
    image: Optional[str] = None  # Base64 JPEG or data URL
    audio: Optional[str] = None  # Base64 audio or data URL


class CheckInResponse(BaseModel):
    record: Dict[str, Any]
    committed: bool
    alert: bool
    alert_reason: str
    emergency_contact: Optional[EmergencyContactModel] = None


class TranscribeRequest(BaseModel):
    audio: str
    mime_type: Optional[str] = None


class ChatRequest(BaseModel):
    content: str


class AssessmentSubmission(BaseModel):
    answers: List[int] = Field(default_factory=list)


class AssessmentResult(BaseModel):
    record: Dict[str, Any]
    recommendation: str


# ==================== Helper Functions ====================

def settings_payload(state) -> Dict[str, Any]:
    return {
        "name": state.name,
        "language": state.language,
        "location": state.location,
        "emergency_contact": to_dict(state.emergency_contact) if state.emergency_contact else None,
        "languages": LANGUAGE_MAP,
    }


# ==================== API Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Calmify API",
        "version": "1.0.0",
        "ai_configured": bool(os.getenv("GEMINI_API_KEY")),
    }


# ---------- Settings ----------

@app.get("/api/settings")
async def get_settings(user: dict = Depends(get_current_user), store: UserStateStore = Depends(get_store)):
    return settings_payload(store.get_or_create(user["id"]))


@app.put("/api/settings")
async def update_settings(
    update: SettingsUpdate,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store)
):
    """Update profile, location, emergency contact and language."""
    contact = None
    if update.emergency_contact is not None:
        contact = EmergencyContact(**update.emergency_contact.model_dump())
    try:
        state = store.update_settings(
            user["id"],
            name=update.name,
            location=update.location,
            emergency_contact=contact,
            language=update.language
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.success("Settings saved", data={"user_id": user["id"][:20], "language": state.language})
    return settings_payload(state)


@app.put("/api/settings/language")
async def set_language(
    update: LanguageUpdate,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store)
):
    try:
        state = store.update_settings(user["id"], language=update.language)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"language": state.language}


# ---------- Dashboard & habits ----------

@app.get("/api/dashboard")
async def get_dashboard(
    mode: str = Query("WEEKLY"),
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store)
):
    """Dashboard overview: stress/energy chart, latest mood, habits and prediction."""
    state = store.get_or_create(user["id"])
    try:
        return build_overview(state, mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/habits")
async def get_habits(user: dict = Depends(get_current_user), store: UserStateStore = Depends(get_store)):
    state = store.get_or_create(user["id"])
    return {"habits": [to_dict(h) for h in ensure_today(state)]}


@app.post("/api/habits/{habit_id}/toggle")
async def toggle_habit_endpoint(
    habit_id: str,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store)
):
    state = store.get_or_create(user["id"])
    try:
        habit = toggle_habit(state, habit_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Habit not found")
    return to_dict(habit)


# ---------- Check-ins ----------

@app.get("/api/checkins")
async def get_check_ins(user: dict = Depends(get_current_user), store: UserStateStore = Depends(get_store)):
    state = store.get_or_create(user["id"])
    return {"history": [to_dict(r) for r in state.history]}


@app.post("/api/checkins", response_model=CheckInResponse)
async def create_check_in(
    request: CheckInRequest,
    user: dict = Depends(get_current_user),
    service: CheckInService = Depends(get_check_in_service)
):
    """
    Analyze a bio check-in.

    A check-in with critical stress and a configured emergency contact is
    returned uncommitted; the client must confirm it via /acknowledge.
    """
    start_time = time.time()
    checkin_logger.request("POST", "/api/checkins", user_id=user["id"], data={
        "text_length": len(request.text or ""),
        "has_image": bool(request.image),
        "has_audio": bool(request.audio),
    })

    try:
        result = await service.analyze(user["id"], request.text, request.image, request.audio)
    except CheckInError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AnalysisError as e:
        checkin_logger.error("Check-in analysis failed", error=e)
        raise HTTPException(status_code=502, detail="Analysis failed. Please try again.")

    checkin_logger.response(200, "/api/checkins", duration=time.time() - start_time, data={
        "mood": result.record.mood,
        "stress_level": result.record.stress_level,
        "alert": result.alert.should_alert,
    })

    contact = result.alert.contact
    return CheckInResponse(
        record=to_dict(result.record),
        committed=result.committed,
        alert=result.alert.should_alert,
        alert_reason=result.alert.reason,
        emergency_contact=EmergencyContactModel(**to_dict(contact)) if contact else None
    )


@app.post("/api/checkins/{record_id}/acknowledge")
async def acknowledge_check_in(
    record_id: str,
    user: dict = Depends(get_current_user),
    pending: PendingCheckIns = Depends(get_pending_check_ins)
):
    """Commit a pending high-stress check-in after the user confirmed the alert."""
    try:
        record = pending.acknowledge(user["id"], record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Pending check-in not found")
    return {"record": to_dict(record), "committed": True}


@app.delete("/api/checkins/{record_id}")
async def discard_check_in(
    record_id: str,
    user: dict = Depends(get_current_user),
    pending: PendingCheckIns = Depends(get_pending_check_ins)
):
    try:
        pending.discard(user["id"], record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Pending check-in not found")
    return {"status": "discarded", "id": record_id}


@app.post("/api/voice/transcribe")
async def transcribe(
    request: TranscribeRequest,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store),
    service: GeminiService = Depends(get_gemini_service)
):
    """Transcribe a voice recording for the voice input buttons."""
    state = store.get_or_create(user["id"])
    try:
        audio_b64, mime = decode_media(request.audio, request.mime_type or "audio/wav")
    except CheckInError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not audio_b64:
        raise HTTPException(status_code=400, detail="Missing audio")

    try:
        transcript = await service.transcribe(audio_b64, state.language, audio_mime=mime)
    except Exception as e:
        logger.error("Transcription failed", error=e)
        raise HTTPException(status_code=502, detail="Voice recognition failed. Please try again.")
    return {"text": transcript}


# ---------- Chat ----------

@app.get("/api/chat/messages")
async def get_chat_messages(
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store),
    sessions: ChatSessionStore = Depends(get_chat_sessions)
):
    state = store.get_or_create(user["id"])
    messages = sessions.history(user["id"], state.language)
    return {"messages": [to_dict(m) for m in messages], "disclaimer": DISCLAIMER}


@app.post("/api/chat")
async def chat(
    message: ChatRequest,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store),
    companion: ChatCompanion = Depends(get_chat_companion)
):
    state = store.get_or_create(user["id"])
    try:
        reply = await companion.send(user["id"], message.content, state.language)
    except ChatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return to_dict(reply)


@app.post("/api/chat/stream")
async def chat_stream(
    message: ChatRequest,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store),
    companion: ChatCompanion = Depends(get_chat_companion)
):
    """Stream the companion's reply with SSE."""
    state = store.get_or_create(user["id"])
    if not message.content or not message.content.strip():
        raise HTTPException(status_code=400, detail="Message is empty")

    async def generate():
        start_time = time.time()
        chat_logger.request("POST", "/api/chat/stream", user_id=user["id"], data={
            "message_length": len(message.content),
            "language": state.language,
        })
        response_length = 0
        async for chunk in companion.stream(user["id"], message.content, state.language):
            response_length += len(chunk)
            yield f"data: {json.dumps({'type': 'chunk', 'content': chunk, 'done': False})}\n\n"

        chat_logger.response(200, "/api/chat/stream", duration=time.time() - start_time, data={
            "response_length": response_length
        })
        yield f"data: {json.dumps({'type': 'done', 'done': True})}\n\n"

    return StreamingResponse(generate(), media_type="text/event-stream")


# ---------- Assessments ----------

@app.get("/api/assessments/{assessment_type}/questions")
async def get_questions(assessment_type: str):
    try:
        questionnaire = assessment.get_questionnaire(assessment_type)
    except assessment.AssessmentError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "type": questionnaire.type,
        "questions": questionnaire.questions,
        "options": assessment.OPTIONS,
    }


@app.post("/api/assessments/{assessment_type}", response_model=AssessmentResult)
async def submit_assessment(
    assessment_type: str,
    submission: AssessmentSubmission,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store)
):
    """Score a questionnaire and log it into the user's history."""
    try:
        assessment.get_questionnaire(assessment_type)
    except assessment.AssessmentError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        record = assessment.evaluate(assessment_type, submission.answers)
    except assessment.AssessmentError as e:
        raise HTTPException(status_code=400, detail=str(e))

    store.add_assessment(user["id"], record)
    logger.success("Assessment logged", data={"type": record.type, "score": record.score, "severity": record.severity})
    return AssessmentResult(record=to_dict(record), recommendation=assessment.recommendation_for(record.score))


@app.get("/api/assessments")
async def get_assessments(user: dict = Depends(get_current_user), store: UserStateStore = Depends(get_store)):
    state = store.get_or_create(user["id"])
    return {"assessments": [to_dict(a) for a in state.assessments]}


# ---------- Consultation ----------

@app.get("/api/doctors")
async def get_doctors(
    q: Optional[str] = None,
    specialty: Optional[str] = None,
    available: bool = False,
    nearby: bool = False,
    user: dict = Depends(get_current_user),
    store: UserStateStore = Depends(get_store)
):
    """List consultation doctors; `nearby` filters on the user's saved location."""
    near = store.get_or_create(user["id"]).location if nearby else None
    doctors = search_doctors(query=q, specialty=specialty, available_only=available, near=near)
    return {"doctors": [to_dict(d) for d in doctors]}


@app.get("/api/doctors/{doctor_id}")
async def get_doctor_profile(doctor_id: str):
    try:
        doctor = get_doctor(doctor_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Doctor not found")
    return to_dict(doctor)


@app.get("/api/crisis-hotline")
async def crisis_hotline():
    return CRISIS_HOTLINE


if __name__ == "__main__":
    import uvicorn

    try:
        uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
