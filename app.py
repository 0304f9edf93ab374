"""
FastAPI application for RatioFlip: landscape to 9:16 portrait with Gemini.

Features:
- Upload a source image (data URI) into a session
- Generate / regenerate a 9:16 portrait with an optional edit instruction
- Download the generated image
- Stateless one-shot generation endpoint
"""
import uvicorn
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
import json
from typing import Any

from config import Config
from image.routes import router as image_router
from utils.logger import get_logger
from common.error_messages import ErrorCode, get_error_response

logger = get_logger("main")

# Sensitive fields that should be masked in logs
SENSITIVE_FIELDS = {
    'api_key', 'token', 'secret', 'authorization', 'x-goog-api-key'
}

# Image payload fields, logged by size only
PAYLOAD_FIELDS = {
    'data_uri', 'image_base64', 'preview_uri', 'url', 'image_uri'
}

MAX_LOGGED_BODY = 2000


def mask_sensitive_data(data: Any, mask_value: str = "***MASKED***") -> Any:
    """
    Recursively mask sensitive fields and shorten image payloads in data structures.

    Args:
        data: Data to mask (dict, list, or string)
        mask_value: Value to replace sensitive data with

    Returns:
        Data with sensitive fields masked
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            lowered = key.lower()
            if lowered in SENSITIVE_FIELDS:
                masked[key] = mask_value
            elif lowered in PAYLOAD_FIELDS and isinstance(value, str):
                masked[key] = f"[{len(value)} chars]"
            else:
                masked[key] = mask_sensitive_data(value, mask_value)
        return masked
    elif isinstance(data, list):
        return [mask_sensitive_data(item, mask_value) for item in data]
    elif isinstance(data, str):
        try:
            parsed = json.loads(data)
            if isinstance(parsed, (dict, list)):
                return json.dumps(mask_sensitive_data(parsed, mask_value))
        except (json.JSONDecodeError, ValueError):
            pass
        return data
    else:
        return data


def _truncate(text: str) -> str:
    if len(text) > MAX_LOGGED_BODY:
        return text[:MAX_LOGGED_BODY] + "... [truncated]"
    return text


# Validate configuration on startup
try:
    Config.validate()
    logger.info("Configuration validated successfully")
except ValueError as e:
    logger.warning(f"Configuration error: {e}")
    logger.warning("Generation requests will fail until GEMINI_API_KEY is set")

app = FastAPI(
    title="RatioFlip API",
    description="Turn landscape images into 9:16 portrait compositions with Gemini image generation.",
    version="1.0.0"
)

# CORS middleware - added first so it applies to error responses too
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions globally."""
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail}
        )

    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    message, status_code = get_error_response(ErrorCode.UNKNOWN_ERROR)
    return JSONResponse(
        status_code=status_code,
        content={"detail": message}
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing; JSON bodies are logged masked and truncated."""
    start_time = time.time()
    full_url = str(request.url)

    request_body = None
    is_json = request.headers.get("content-type", "").startswith("application/json")
    if request.method in ["POST", "PUT", "PATCH"] and is_json:
        try:
            body_bytes = await request.body()
            if body_bytes:
                request_body = _truncate(mask_sensitive_data(body_bytes.decode("utf-8")))
        except Exception as e:
            request_body = f"[Error reading body: {str(e)}]"

    log_msg = f"→ {request.method} {full_url} - Client: {request.client.host if request.client else 'unknown'}"
    if request_body:
        log_msg += f"\n  Request Body: {request_body}"
    logger.info(log_msg)

    try:
        response = await call_next(request)
    except Exception as e:
        process_time = (time.time() - start_time) * 1000
        logger.error(f"← {request.method} {full_url} - Error: {str(e)} - Time: {process_time:.2f}ms")
        raise

    process_time = (time.time() - start_time) * 1000
    logger.info(f"← {request.method} {full_url} - Status: {response.status_code} - Time: {process_time:.2f}ms")
    return response


app.include_router(image_router)
logger.info("Image router included")


@app.on_event("startup")
async def startup_event():
    """Log startup event."""
    logger.info("=" * 80)
    logger.info("RatioFlip API starting up")
    logger.info(f"Model: {Config.GEMINI_MODEL}")
    logger.info(f"Host: {Config.HOST}:{Config.PORT}")
    logger.info("=" * 80)


@app.on_event("shutdown")
async def shutdown_event():
    """Log shutdown event."""
    logger.info("RatioFlip API shutting down")


@app.get("/healthz")
def health():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {"status": "ok"}


if __name__ == "__main__":
    logger.info(f"Starting server on {Config.HOST}:{Config.PORT}")
    uvicorn.run(
        "app:app",
        host=Config.HOST,
        port=Config.PORT,
        reload=Config.RELOAD,
        log_level="info"
    )
