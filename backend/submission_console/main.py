from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from submission_console.routes_console import router as console_router
from submission_console.services.console import SubmissionConsole
from submission_console.settings import get_settings

logger = logging.getLogger("submission_console")

settings = get_settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


configure_logging()

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url)
    return PlainTextResponse("Internal Server Error", status_code=500)


@app.get("/ping")
async def ping():
    return {"status": "ok"}


app.include_router(console_router)


@app.on_event("startup")
async def startup_event():
    """Create the operator console and open the task list."""
    console = SubmissionConsole(settings=settings)
    app.state.console = console
    await console.start()
    logger.info(f"Console started against {settings.commands_url} ({settings.environment})")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop every poll and release edit staging."""
    console: SubmissionConsole | None = getattr(app.state, "console", None)
    if console is not None:
        await console.shutdown()
    logger.info("Console stopped on app shutdown")
