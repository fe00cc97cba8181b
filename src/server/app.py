# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config.loader import get_str_env
from src.server.chat.dependencies import initialise_chat_runtime, set_chat_runtime
from src.server.chat.router import router as chat_router
from src.server.chat.schemas import HealthResponse
from src.server.errors import ChatRelayError, InternalError

logger = logging.getLogger(__name__)

INTERNAL_SERVER_ERROR_DETAIL = "Internal server error"


@asynccontextmanager
async def lifespan(_: FastAPI):
    runtime = initialise_chat_runtime()
    await runtime.start()
    set_chat_runtime(runtime)
    try:
        yield
    finally:
        await runtime.close()


app = FastAPI(
    title="Chat Relay API",
    description="Relays chat messages to a language model and keeps per-session transcripts",
    version="0.1.0",
    lifespan=lifespan,
)

allowed_origins_str = get_str_env("ALLOWED_ORIGINS", "*")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

logger.info("Allowed origins: %s", allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(chat_router)


@app.exception_handler(ChatRelayError)
async def chat_relay_error_handler(_: Request, exc: ChatRelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected malformed request: %s", exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Bad request", "message": "Malformed request body"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        message = f"API endpoint not found: {request.method} {request.url.path}"
        content = {"error": "Not found", "message": message}
    else:
        content = {"error": str(exc.detail), "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving request")
    error = InternalError(str(exc) or "Unknown error", error=INTERNAL_SERVER_ERROR_DETAIL)
    # Runs outside CORSMiddleware, so the allow-origin header is added here.
    headers = {}
    origin = request.headers.get("origin")
    if "*" in allowed_origins:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Report service liveness."""
    return HealthResponse(
        status="healthy",
        service=get_str_env("SERVICE_NAME", "Chat Relay Assistant"),
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
