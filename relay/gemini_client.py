"""
Gemini API integration for the relay.

GeminiClient is a thin async facade over the google-genai SDK: it creates chat
sessions with the fixed generation config, sends (multi-part) messages, uploads
files and fetches their status. Every SDK call runs in the default thread
executor so a slow request never blocks the event loop, and every SDK failure
surfaces as UpstreamError.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, TypeVar

from google import genai
from google.genai import types

from relay.config import DEFAULT_MODEL, GENERATION_CONFIG
from relay.errors import ConfigurationError, RelayError, UpstreamError

logger = logging.getLogger("relay.gemini")

T = TypeVar("T")


class GeminiClient:
    """
    High-level facade used by RelayService.

    The underlying genai.Client is built on first use, so the app can start
    (and serve validation errors) without an API key.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        client: Optional[genai.Client] = None,
    ):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("GEMINI_API_KEY not set in environment.")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def generation_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(**GENERATION_CONFIG)

    async def _call(self, what: str, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except RelayError:
            raise
        except Exception as exc:
            logger.error(f"[Gemini] {what} failed: {exc}")
            raise UpstreamError(str(exc) or type(exc).__name__) from exc

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def start_chat(self) -> Any:
        """Create a new chat session configured with GENERATION_CONFIG."""
        client = self.client
        chat = await self._call(
            "chats.create",
            lambda: client.chats.create(model=self.model, config=self.generation_config()),
        )
        logger.info(f"[Gemini] Chat created (model={self.model})")
        return chat

    async def send_message(self, chat: Any, message: Any) -> str:
        """
        Send one user turn and return the reply text.

        Args:
            chat:    A chat returned by start_chat().
            message: Prompt text, or a list of parts (see file_message()).
        """
        # The SDK sends `message` plus the chat's internal history on every call.
        response = await self._call("send_message", lambda: chat.send_message(message))
        return response.text or ""

    @staticmethod
    def file_message(file: Any, prompt: str) -> list[types.Part]:
        """File reference part followed by the prompt text."""
        return [
            types.Part.from_uri(file_uri=file.uri, mime_type=file.mime_type),
            types.Part.from_text(text=prompt),
        ]

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_file(self, path: str, mime_type: str) -> Any:
        """Upload a local file to the Gemini file store; returns the remote file reference."""
        client = self.client
        file = await self._call(
            "files.upload",
            lambda: client.files.upload(
                file=path,
                config=types.UploadFileConfig(mime_type=mime_type, display_name=path),
            ),
        )
        logger.info(f"[Gemini] Uploaded {path} as {file.name} ({mime_type})")
        return file

    async def get_file(self, name: str) -> Any:
        client = self.client
        return await self._call("files.get", lambda: client.files.get(name=name))
