"""
Request-handling core of the relay.

RelayService ties the pieces together: it validates input, gets or creates the
caller's chat session, uploads and polls attachments, and sends the prompt.
The HTTP layer in relay.main only maps its results and errors to responses.
"""

import asyncio
import logging
from typing import Optional

from relay.config import Settings
from relay.errors import ValidationError
from relay.gemini_client import GeminiClient
from relay.polling import PollPolicy, Sleep, wait_for_files_active
from relay.session_store import SessionStore, build_policy

logger = logging.getLogger("relay")

MISSING_TEXT_FIELDS = "Missing prompt or uid"
MISSING_FILE_FIELDS = "Missing prompt, uid, or file"


def require(message: str, *values) -> None:
    """Raise ValidationError(message) if any value is None or empty."""
    if any(value is None or value == "" for value in values):
        raise ValidationError(message)


class RelayService:
    def __init__(
        self,
        gemini: GeminiClient,
        sessions: SessionStore,
        poll_policy: Optional[PollPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        upload_dir: str = "uploads",
    ):
        self.gemini = gemini
        self.sessions = sessions
        self.poll_policy = poll_policy or PollPolicy()
        self.sleep = sleep
        self.upload_dir = upload_dir

    async def ask(self, uid: Optional[str], prompt: Optional[str]) -> str:
        """Send a text prompt through the user's session and return the reply."""
        require(MISSING_TEXT_FIELDS, prompt, uid)

        chat = await self.sessions.get_or_create(uid)
        text = await self.gemini.send_message(chat, prompt)
        await self.sessions.touch(uid)
        return text

    async def ask_with_file(
        self,
        uid: Optional[str],
        prompt: Optional[str],
        path: str,
        mime_type: str,
    ) -> str:
        """
        Upload a local file, wait until Gemini can use it, then send it with the prompt.

        Steps:
          1. Upload `path` to the Gemini file store.
          2. Poll until the file is ACTIVE (FileProcessingError / PollingTimeoutError otherwise).
          3. Get or create the user's session.
          4. Send [file part, text part] and return the reply text.
        """
        require(MISSING_FILE_FIELDS, prompt, uid, path)

        uploaded = await self.gemini.upload_file(path, mime_type)
        await wait_for_files_active([uploaded], self.gemini.get_file, self.poll_policy, self.sleep)

        chat = await self.sessions.get_or_create(uid)
        text = await self.gemini.send_message(chat, self.gemini.file_message(uploaded, prompt))
        await self.sessions.touch(uid)
        return text


def build_service(settings: Settings) -> RelayService:
    gemini = GeminiClient(api_key=settings.gemini_api_key, model=settings.gemini_model)
    sessions = SessionStore(
        factory=gemini.start_chat,
        policy=build_policy(
            idle_seconds=settings.session_idle_minutes * 60,
            max_entries=settings.session_max_entries,
        ),
    )
    return RelayService(
        gemini=gemini,
        sessions=sessions,
        poll_policy=PollPolicy(
            interval=settings.poll_interval_seconds,
            max_attempts=settings.poll_max_attempts,
        ),
        upload_dir=settings.upload_dir,
    )
