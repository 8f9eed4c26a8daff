"""
Shared test setup: import paths and a fake OpenAI-compatible client.
"""

import json
import os
import sys
from types import SimpleNamespace

import pytest

# Add project root to path
project_root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
sys.path.insert(0, os.path.join(project_root, "calmify", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))


class FakeStream:
    """Async iterator mimicking a streamed chat completion."""

    def __init__(self, chunks):
        self.chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.chunks:
            raise StopAsyncIteration
        chunk = self.chunks.pop(0)
        if isinstance(chunk, Exception):
            raise chunk
        return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=chunk))])


class FakeCompletions:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if kwargs.get("stream"):
            return FakeStream(response)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=response))])


class FakeLLMClient:
    """Stands in for AsyncOpenAI: exposes chat.completions.create."""

    def __init__(self, responses=None):
        self.completions = FakeCompletions(responses or [])
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self):
        return self.completions.calls

    def queue(self, *responses):
        self.completions.responses.extend(responses)


def analysis_json(stress=4, energy=6, mood="Calm", prediction="Meditation raises calm probability by 20%."):
    return json.dumps({
        "stressLevel": stress,
        "mood": mood,
        "energyLevel": energy,
        "summary": "You seem settled today.",
        "recommendations": ["Breathe slowly", "Take a walk", "Drink water"],
        "prediction": prediction,
    })


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def make_analysis():
    return analysis_json
