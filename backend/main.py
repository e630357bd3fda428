# backend/main.py

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from core import state
from core.config import settings
from core.errors import ChatError, InvalidRequest
from core.logging import setup_logging, get_logger
from api.routes import chat, health, rooms

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="SlimChat - Long-Poll Messaging")

# CORS: the browser client polls from wherever it is served
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    """Render service errors as the short plain-text bodies clients expect."""
    if exc.status_code >= 500:
        logger.error("Failed %s %s: %s", request.method, request.url.path, exc)
    else:
        logger.warning("Refusing %s %s: %s", request.method, request.url.path, exc)
    return PlainTextResponse(exc.detail, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning("Refusing %s %s: %s", request.method, request.url.path, exc.errors())
    return PlainTextResponse(InvalidRequest.detail, status_code=InvalidRequest.status_code)


# REST routes
app.include_router(health.router)
app.include_router(rooms.router)

# Long-poll wire protocol
app.include_router(chat.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - %s store", settings.STORE_BACKEND)
    await state.store.connect()


@app.on_event("shutdown")
async def on_shutdown():
    await state.store.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)
