"""
Shared fixtures: an in-memory stand-in for the Gemini API and a TestClient
wired to a RelayService built around it. No network access or API key needed.
"""

from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from relay.gemini_client import GeminiClient
from relay.main import app, get_service
from relay.polling import PollPolicy
from relay.service import RelayService
from relay.session_store import SessionStore


@dataclass
class FakeFile:
    name: str
    uri: str
    mime_type: str
    state: str


class FakeChat:
    def __init__(self, index: int):
        self.index = index
        self.received = []


def echo(message) -> str:
    """Reply with the text the model was sent (text parts only)."""
    if isinstance(message, str):
        return message
    return " ".join(part.text for part in message if part.text)


class FakeGemini(GeminiClient):
    """
    Records every call. `states` is the sequence of file states returned by
    successive get_file() calls; the last one repeats.
    """

    def __init__(self, states=("ACTIVE",)):
        super().__init__(api_key="test-key")
        self.states = list(states)
        self.chats: list[FakeChat] = []
        self.sent: list[tuple] = []
        self.uploads: list[tuple] = []
        self.fetches = 0
        self.fail_with = None

    async def start_chat(self):
        chat = FakeChat(len(self.chats))
        self.chats.append(chat)
        return chat

    async def send_message(self, chat, message):
        if self.fail_with is not None:
            raise self.fail_with
        chat.received.append(message)
        self.sent.append((chat, message))
        return echo(message)

    async def upload_file(self, path, mime_type):
        self.uploads.append((path, mime_type, Path(path).read_bytes()))
        return FakeFile(
            name="files/abc123",
            uri="https://generativelanguage.googleapis.com/v1beta/files/abc123",
            mime_type=mime_type,
            state="PROCESSING",
        )

    async def get_file(self, name):
        state = self.states[min(self.fetches, len(self.states) - 1)]
        self.fetches += 1
        return FakeFile(
            name=name,
            uri=f"https://generativelanguage.googleapis.com/v1beta/{name}",
            mime_type="application/pdf",
            state=state,
        )


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def relay_service(fake_gemini, upload_dir):
    return RelayService(
        gemini=fake_gemini,
        sessions=SessionStore(factory=fake_gemini.start_chat),
        poll_policy=PollPolicy(interval=0, max_attempts=5),
        sleep=no_sleep,
        upload_dir=str(upload_dir),
    )


@pytest.fixture
def client(relay_service):
    app.dependency_overrides[get_service] = lambda: relay_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
