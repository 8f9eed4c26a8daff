"""
Gemini Service

Builds prompts and calls Gemini through its OpenAI-compatible endpoint:
- Multimodal check-in analysis (text + face snapshot + voice) with JSON schema output
- Companion chat (single call per turn, optional streaming)
- Voice transcription for the voice input buttons
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, List, Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from calmify.languages import language_name
from calmify.user_state import ChatMessage

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class AnalysisError(RuntimeError):
    """Raised when the model returns no usable analysis."""


ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "stressLevel": {
            "type": "number",
            "description": "Estimated stress level from 0 (very low) to 10 (extreme panic).",
        },
        "mood": {
            "type": "string",
            "description": "A one or two word description of the user's current mood.",
        },
        "energyLevel": {
            "type": "number",
            "description": "Estimated energy level from 0 (lethargic) to 10 (hyperactive).",
        },
        "summary": {
            "type": "string",
            "description": "A compassionate, professional summary of the observations.",
        },
        "recommendations": {
            "type": "array",
            "items": {"type": "string"},
            "description": "3 actionable, short coping mechanisms or activities.",
        },
        "prediction": {
            "type": "string",
            "description": (
                "A probability statement about stress reduction based on habits "
                "(e.g. 'Your exercise habit increases the probability of stress reduction by 30% today')."
            ),
        },
    },
    "required": ["stressLevel", "mood", "energyLevel", "summary", "recommendations", "prediction"],
}


def _clamp_level(value: Any) -> float:
    level = float(value)
    return max(0.0, min(10.0, level))


@dataclass
class AnalysisResponse:
    """Parsed check-in analysis."""
    stress_level: float
    mood: str
    energy_level: float
    summary: str
    recommendations: List[str] = field(default_factory=list)
    prediction: str = ""

    @classmethod
    def from_json(cls, raw: str) -> "AnalysisResponse":
        """
        Parse the model's JSON output.

        Raises:
            AnalysisError: If the text is empty, not JSON, or misses required fields
        """
        if not raw or not raw.strip():
            raise AnalysisError("No response from AI")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise AnalysisError(f"AI returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise AnalysisError(f"AI response is not a JSON object: {type(data).__name__}")

        missing = [key for key in ANALYSIS_SCHEMA["required"] if key not in data]
        if missing:
            raise AnalysisError(f"AI response missing fields: {', '.join(missing)}")
        if not isinstance(data["recommendations"], list):
            raise AnalysisError("AI response recommendations must be a list")

        try:
            return cls(
                stress_level=_clamp_level(data["stressLevel"]),
                mood=str(data["mood"]).strip(),
                energy_level=_clamp_level(data["energyLevel"]),
                summary=str(data["summary"]).strip(),
                recommendations=[str(r) for r in data["recommendations"]],
                prediction=str(data["prediction"]).strip(),
            )
        except (TypeError, ValueError) as e:
            raise AnalysisError(f"AI response has invalid values: {e}") from e


def chat_system_instruction(language: str) -> str:
    lang_name = language_name(language)
    return f"""You are Calmify, a compassionate AI mental health companion.
Please converse in {lang_name}.
Your goal is to listen, validate feelings, and offer gentle guidance.
Keep responses concise.
Do not diagnose.
If self-harm is mentioned, provide emergency resources immediately."""


def _audio_format(mime_type: Optional[str]) -> str:
    if mime_type and mime_type.lower() in ("audio/mp3", "audio/mpeg"):
        return "mp3"
    return "wav"


class GeminiService:
    """Single entry point for every call to the hosted model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        llm_client: Optional[Any] = None
    ):
        """
        Initialize the service.

        Args:
            api_key: Gemini API key (defaults to GEMINI_API_KEY)
            model: Model name (defaults to GEMINI_MODEL or gemini-2.5-flash)
            llm_client: Pre-built OpenAI-compatible async client (tests inject a fake)
        """
        self.model = model or os.getenv("GEMINI_MODEL", DEFAULT_MODEL)

        if llm_client is not None:
            self.llm_client = llm_client
            return

        api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY not found in environment variables")
        self.llm_client = AsyncOpenAI(
            api_key=api_key,
            base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL)
        )

    def build_analysis_messages(
        self,
        text_input: str,
        image_base64: Optional[str],
        audio_base64: Optional[str],
        language: str,
        completed_habits: List[str],
        image_mime: str = "image/jpeg",
        audio_mime: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Build the multimodal message list for a check-in analysis."""
        lang_name = language_name(language)

        system_context = f"""You are an expert AI mental health assistant named Calmify.
Language: Please respond in {lang_name}.

Analyze the inputs (text, face, voice) and the user's completed habits for today: [{', '.join(completed_habits)}].

Task:
1. Assess mental state.
2. Calculate a hypothetical probability of stress reduction based on their completed habits (e.g., if they meditated, probability of calm increases).
3. Rate Stress/Energy (0-10).
4. Be empathetic."""

        parts: List[Dict[str, Any]] = [{"type": "text", "text": system_context}]

        if text_input:
            parts.append({"type": "text", "text": f'User Note: "{text_input}"'})

        if image_base64:
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{image_mime};base64,{image_base64}"},
            })

        if audio_base64:
            parts.append({
                "type": "input_audio",
                "input_audio": {"data": audio_base64, "format": _audio_format(audio_mime)},
            })

        return [
            {
                "role": "system",
                "content": f"You are a empathetic mental health professional speaking {lang_name}.",
            },
            {"role": "user", "content": parts},
        ]

    async def analyze_check_in(
        self,
        text_input: str,
        image_base64: Optional[str],
        audio_base64: Optional[str],
        language: str,
        completed_habits: List[str],
        image_mime: str = "image/jpeg",
        audio_mime: Optional[str] = None
    ) -> AnalysisResponse:
        """
        Analyze a multimodal check-in.

        Raises:
            AnalysisError: If the call fails or the output cannot be parsed
        """
        messages = self.build_analysis_messages(
            text_input, image_base64, audio_base64, language, completed_habits,
            image_mime=image_mime, audio_mime=audio_mime
        )

        try:
            response = await self.llm_client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "check_in_analysis", "schema": ANALYSIS_SCHEMA},
                },
            )
        except Exception as e:
            logger.error(f"❌ [GeminiService] Analysis failed: {e}")
            raise AnalysisError(f"Analysis failed: {e}") from e

        raw = response.choices[0].message.content if response.choices else None
        analysis = AnalysisResponse.from_json(raw or "")
        logger.info(
            f"🧠 [GeminiService] Analysis: mood={analysis.mood}, "
            f"stress={analysis.stress_level:g}, energy={analysis.energy_level:g}"
        )
        return analysis

    def build_chat_messages(self, history: List[ChatMessage], language: str) -> List[Dict[str, str]]:
        """Convert chat history into provider messages, system instruction first."""
        messages = [{"role": "system", "content": chat_system_instruction(language)}]
        for message in history:
            role = "assistant" if message.role == "model" else "user"
            messages.append({"role": role, "content": message.text})
        return messages

    async def chat(self, history: List[ChatMessage], language: str) -> str:
        """Get the companion's reply to the last user message in history."""
        response = await self.llm_client.chat.completions.create(
            model=self.model,
            messages=self.build_chat_messages(history, language),
            temperature=0.7
        )
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def stream_chat(
        self,
        history: List[ChatMessage],
        language: str
    ) -> AsyncGenerator[str, None]:
        """Stream the companion's reply chunk by chunk."""
        stream = await self.llm_client.chat.completions.create(
            model=self.model,
            messages=self.build_chat_messages(history, language),
            temperature=0.7,
            stream=True
        )
        async for chunk in stream:
            if chunk.choices and len(chunk.choices) > 0:
                delta = chunk.choices[0].delta
                if delta and delta.content:
                    yield delta.content

    async def transcribe(
        self,
        audio_base64: str,
        language: str,
        audio_mime: Optional[str] = None
    ) -> str:
        """Transcribe spoken input so it can be appended to a text field."""
        lang_name = language_name(language)
        prompt = (
            f"Transcribe the user's speech verbatim in {lang_name}. "
            "Return only the transcript, with no commentary. "
            "If there is no intelligible speech, return an empty string."
        )
        response = await self.llm_client.chat.completions.create(
            model=self.model,
            messages=[{
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "input_audio",
                        "input_audio": {"data": audio_base64, "format": _audio_format(audio_mime)},
                    },
                ],
            }],
            temperature=0.0
        )
        if not response.choices:
            return ""
        transcript = (response.choices[0].message.content or "").strip()
        return transcript.strip('"').strip()
