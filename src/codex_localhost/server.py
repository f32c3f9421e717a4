"""HTTP front door for the codex localhost bridge.

Two apps share the same executor:

- create_app: OpenAI-compatible chat server (/v1/chat/completions).
- create_forwarder_app: minimal /ask endpoint answering in text/plain.
"""

import asyncio
import json
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .adapters import models_list, render_chat, render_plain, should_stream, stream_chat
from .config import Settings, load_settings
from .executor import Outcome, check_agent_available, find_agent_binary, run_agent
from .executor.logging import configure_console, get_logger
from .prompts import extract_question, messages_to_prompt

DEFAULT_CHAT_PORT = 3040
DEFAULT_FORWARDER_PORT = 3050

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Authorization", "Content-Type"]
CORS_MAX_AGE = 600

SSE_HEADERS = {
    "cache-control": "no-cache, no-transform",
    "connection": "keep-alive",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": {"message": message}}, status_code=status_code)


def _check_auth(request: Request, settings: Settings) -> Optional[JSONResponse]:
    """Return a 401 response if the bearer token is required and wrong."""
    if not settings.require_api_key:
        return None
    auth = request.headers.get("authorization", "")
    if not auth.startswith("Bearer "):
        return _error(401, "Missing Authorization Bearer token")
    token = auth[len("Bearer "):].strip()
    if not settings.api_key or token != settings.api_key:
        return _error(401, "Invalid API key")
    return None


async def _run(prompt: str, settings: Settings) -> Outcome:
    return await run_agent(
        prompt,
        codex_bin=settings.codex_bin,
        workdir=settings.workdir,
        timeout_ms=settings.timeout_ms,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the OpenAI-compatible chat server."""
    if settings is None:
        settings = load_settings()
    logger = get_logger()

    app = FastAPI(title="codex-localhost", description="OpenAI-compatible proxy to `codex exec --json`")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=["*"],
        max_age=CORS_MAX_AGE,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return _error(404, "Not found")
        return _error(exc.status_code, str(exc.detail))

    @app.options("/{path:path}")
    async def preflight(path: str):
        return Response(
            status_code=204,
            headers={
                "access-control-allow-origin": "*",
                "access-control-allow-methods": ",".join(CORS_METHODS),
                "access-control-allow-headers": ", ".join(CORS_HEADERS),
                "access-control-max-age": str(CORS_MAX_AGE),
            },
        )

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.get("/debug/check")
    async def debug_check():
        available, message = check_agent_available(settings.codex_bin)
        return {
            "ok": True,
            "model": settings.model_id,
            "prompt_mode": settings.prompt_mode,
            "cwd": str(settings.workdir),
            "codex_bin": settings.codex_bin,
            "codex_bin_resolved": find_agent_binary(settings.codex_bin),
            "codex_bin_message": message,
            "codex_available": available,
            "auth_required": settings.require_api_key,
            "stream_disabled": settings.force_non_stream,
            "stream_forced": settings.force_stream,
        }

    @app.get("/v1/models")
    async def list_models():
        return models_list(settings.model_id)

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request):
        try:
            denied = _check_auth(request, settings)
            if denied is not None:
                return denied

            raw = (await request.body()).decode("utf-8", errors="replace")
            try:
                payload = json.loads(raw or "{}")
            except (ValueError, RecursionError):
                return _error(400, "Invalid JSON")
            if not isinstance(payload, dict):
                return _error(400, "Invalid JSON")

            model = payload.get("model")
            if not model:
                return _error(400, "model is required")
            if model != settings.model_id:
                return _error(400, "unsupported model")

            prompt = messages_to_prompt(payload.get("messages") or [], settings.prompt_mode)
            if prompt is None:
                return _error(400, "No prompt could be extracted")

            run = asyncio.create_task(_run(prompt, settings))

            wants_stream = should_stream(
                payload.get("stream"),
                request.headers.get("accept"),
                force_stream=settings.force_stream,
                force_non_stream=settings.force_non_stream,
            )
            if wants_stream:
                return StreamingResponse(
                    stream_chat(run, model),
                    media_type="text/event-stream; charset=utf-8",
                    headers=SSE_HEADERS,
                )

            status_code, body = render_chat(await run, model)
            return JSONResponse(body, status_code=status_code)
        except Exception as e:
            logger.exception("Chat completion failed")
            return _error(500, str(e) or "Internal error")

    return app


def create_forwarder_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the minimal /ask forwarder."""
    if settings is None:
        settings = load_settings()
    logger = get_logger()

    app = FastAPI(title="codex-forwarder", description="POST /ask → final codex answer as text/plain")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return JSONResponse({"error": "not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.post("/ask")
    async def ask(request: Request):
        try:
            raw = (await request.body()).decode("utf-8", errors="replace")
            question = extract_question(raw)
            if question is None:
                return PlainTextResponse("missing question", status_code=400)

            reply = render_plain(await _run(question, settings))
            return PlainTextResponse(reply.body, status_code=reply.status_code, headers=reply.headers)
        except Exception as e:
            logger.exception("Ask failed")
            return PlainTextResponse(str(e) or "internal error", status_code=500)

    return app


def _serve(app: FastAPI, settings: Settings, default_port: int, name: str) -> None:
    logger = configure_console()
    port = settings.port or default_port
    logger.info(f"[{name}] listening on http://{settings.host}:{port}")
    logger.info(f"[{name}] Using CODEX_BIN='{settings.codex_bin}', CODEX_WORKDIR='{settings.workdir}'")
    uvicorn.run(app, host=settings.host, port=port)


def main() -> None:
    """Entry point for the chat server."""
    settings = load_settings()
    _serve(create_app(settings), settings, DEFAULT_CHAT_PORT, "codex-localhost")


def main_forwarder() -> None:
    """Entry point for the /ask forwarder."""
    settings = load_settings()
    _serve(create_forwarder_app(settings), settings, DEFAULT_FORWARDER_PORT, "codex-forwarder")


if __name__ == "__main__":
    main()
