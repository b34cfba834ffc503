import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from relay.config import get_settings
from relay.errors import RelayError
from relay.service import MISSING_FILE_FIELDS, RelayService, build_service, require
from relay.uploads import declared_mime_type, spooled_upload

settings = get_settings()

# Configure Logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("relay")

service = build_service(settings)


def get_service() -> RelayService:
    return service


def resolve_service(app: FastAPI) -> RelayService:
    """The service the routes see, honouring dependency overrides."""
    return app.dependency_overrides.get(get_service, get_service)()


# Background task: evict idle sessions periodically
async def _idle_cleanup_loop(app: FastAPI, interval: float):
    while True:
        await asyncio.sleep(interval)
        removed = await resolve_service(app).sessions.cleanup()
        if removed:
            logger.info(f"[Cleanup] Evicted {removed} idle Gemini session(s)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the idle-session sweep for the lifetime of the app."""
    cleanup = asyncio.create_task(_idle_cleanup_loop(app, settings.session_cleanup_seconds))
    logger.info(f"Relay started (model={settings.gemini_model}, key_set={bool(settings.gemini_api_key)})")
    yield
    cleanup.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup


app = FastAPI(title="Gemini Relay", lifespan=lifespan)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    if exc.status_code < 500:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    else:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _unexpected(exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


# API Endpoints

@app.get("/gemini")
async def gemini_text(
    prompt: Optional[str] = None,
    uid: Optional[str] = None,
    relay: RelayService = Depends(get_service),
):
    """
    Send a text prompt through the caller's chat session.

    Returns:
        {"response": <generated text>}; 400 if prompt or uid is missing,
        500 with {"error": ...} on any provider failure.
    """
    logger.info(f"TEXT Request: uid='{uid}', prompt={len(prompt or '')} chars")
    try:
        text = await relay.ask(uid, prompt)
    except RelayError:
        raise
    except Exception as exc:
        return _unexpected(exc)
    return {"response": text}


@app.post("/api/gemini")
async def gemini_file(
    request: Request,
    prompt: Optional[str] = None,
    uid: Optional[str] = None,
    relay: RelayService = Depends(get_service),
):
    """
    Send an uploaded file (image, PDF, ...) plus a text prompt through the caller's session.

    The file comes from the multipart field `img_pdf`; a plain form value in
    that field counts as no file. The upload is spooled to the scratch
    directory, pushed to the Gemini file store, polled until ACTIVE and then
    referenced in the message. The local copy is always removed before the
    response is sent.
    """
    form = await request.form()
    img_pdf = form.get("img_pdf")
    if not isinstance(img_pdf, UploadFile):
        img_pdf = None
    require(MISSING_FILE_FIELDS, prompt, uid, img_pdf)

    mime_type = declared_mime_type(img_pdf)
    logger.info(
        f"FILE Request: uid='{uid}', file='{img_pdf.filename}' ({mime_type}), "
        f"prompt={len(prompt)} chars"
    )
    try:
        async with spooled_upload(img_pdf, relay.upload_dir) as path:
            text = await relay.ask_with_file(uid, prompt, path, mime_type)
    except RelayError:
        raise
    except Exception as exc:
        return _unexpected(exc)
    return {"response": text}


@app.get("/health")
async def health(relay: RelayService = Depends(get_service)):
    return {"status": "ok", "sessions": len(relay.sessions)}


def run():
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
