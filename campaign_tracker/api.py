"""
HTTP surface for the campaign tracker website's forms.
Thin wrappers around the submission service; every route is POST-only and
takes a form-url-encoded body.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Annotated, Any, AsyncGenerator

from fastapi import APIRouter, Depends, FastAPI, Form, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campaign_tracker.config import APP_NAME, APP_VERSION, Settings, validate_config
from campaign_tracker.errors import ErrorKind, SubmissionError, ValidationFailed
from campaign_tracker.schemas import AdjustScoreForm, DeletePlayerForm, GameResultForm, RegisterPlayerForm
from campaign_tracker.services import RebuildNotifier, SubmissionService
from campaign_tracker.store import DocumentStore, GitHubDocumentStore, InMemoryDocumentStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _log_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


# ---------- Wiring ----------


def build_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory document store; submissions are lost on restart")
        return InMemoryDocumentStore()
    return GitHubDocumentStore.from_settings(settings)


def build_service(settings: Settings) -> SubmissionService:
    return SubmissionService(
        store=build_store(settings),
        notifier=RebuildNotifier(timeout_s=settings.http_timeout_seconds),
        settings=settings,
    )


def get_submission_service(request: Request) -> SubmissionService:
    """Built on first use so the app can start (and report config problems) without credentials."""
    state = request.app.state
    if state.service is None:
        state.service = build_service(state.settings)
    return state.service


# ---------- Routes ----------

router = APIRouter()


@router.post("/register-player")
def register_player(
    form: Annotated[RegisterPlayerForm, Form()],
    service: SubmissionService = Depends(get_submission_service),
) -> dict[str, Any]:
    """Register a player; adds them to players and a zero-score row to the leaderboard."""
    logger.info("Registration: %s (%s)", form.player_name, form.warband_name)
    return service.register_player(form).to_dict()


@router.post("/update-leaderboard")
def update_leaderboard(
    form: Annotated[GameResultForm, Form()],
    service: SubmissionService = Depends(get_submission_service),
) -> dict[str, Any]:
    """Report a game: credit both players and append to the game log in one commit."""
    logger.info("Game report: %s vs %s (%s)", form.player1_id, form.player2_id, form.battleplan_name)
    return service.record_game_result(form).to_dict()


@router.post("/adjust-player-score")
def adjust_player_score(
    form: Annotated[AdjustScoreForm, Form()],
    service: SubmissionService = Depends(get_submission_service),
) -> dict[str, Any]:
    """Admin: apply point/territory deltas to one leaderboard row."""
    return service.adjust_score(form).to_dict()


@router.post("/delete-player")
def delete_player(
    form: Annotated[DeletePlayerForm, Form()],
    service: SubmissionService = Depends(get_submission_service),
) -> dict[str, Any]:
    """Admin: remove a player from players and leaderboard."""
    return service.delete_player(form).to_dict()


# ---------- Error rendering ----------


async def _submission_error(request: Request, exc: SubmissionError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message, "kind": exc.kind.value})


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": str(err.get("loc", ("",))[-1]), "message": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
    failure = ValidationFailed("Missing or invalid fields: " + ", ".join(e["field"] for e in errors))
    logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, failure.kind.value, failure.message)
    return JSONResponse(
        status_code=failure.status_code,
        content={"message": failure.message, "kind": failure.kind.value, "errors": errors},
    )


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = ErrorKind.METHOD_NOT_ALLOWED.value if exc.status_code == 405 else None
    content: dict[str, Any] = {"message": exc.detail}
    if kind:
        content["kind"] = kind
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error in %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "An unexpected error occurred while processing the submission.", "error": str(exc)},
    )


# ---------- App ----------


def create_app(settings: Settings | None = None, service: SubmissionService | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.getLogger().setLevel(_log_level(settings.log_level))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting %s v%s", APP_NAME, APP_VERSION)
        config_errors = validate_config(settings)
        if config_errors:
            logger.error("Configuration errors detected:")
            for error in config_errors:
                logger.error("  - %s", error)
            logger.warning("Service starting with configuration issues - some submissions may fail")
        else:
            logger.info("Configuration validated successfully")
        yield
        logger.info("Shutting down %s", APP_NAME)
        if app.state.service is not None:
            app.state.service.close()

    app = FastAPI(
        title=APP_NAME,
        version=APP_VERSION,
        description="Form submissions for the campaign tracker site",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.service = service

    app.include_router(router, prefix=settings.route_prefix, tags=["submissions"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["POST"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SubmissionError, _submission_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(Exception, _unexpected_error)

    @app.get("/health")
    def health_check() -> dict[str, Any]:
        """Health check endpoint (no auth required)."""
        return {"status": "healthy", "service": APP_NAME, "version": APP_VERSION}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "campaign_tracker.api:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 8080)),
        reload=True,
    )
