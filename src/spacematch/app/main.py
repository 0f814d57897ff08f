"""FastAPI application entry point for the SpaceMatch matching API."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spacematch.app.config import get_settings
from spacematch.infra.database import async_session, init_db
from spacematch.services.matching_service import MatchingService
from spacematch.services.notification_service import get_dispatcher

logger = logging.getLogger(__name__)


async def run_match_refresh() -> None:
    """One sweep over every active demand listing. Failures are logged."""
    try:
        async with async_session() as db:
            total = await MatchingService(db, notifier=get_dispatcher()).refresh_all_matches()
            logger.info("Match refresh loop: %d matches stored", total)
    except Exception as e:
        logger.error("Match refresh loop error: %s", e)


async def match_refresh_loop(interval_minutes: int):
    """Recompute matches for every active demand listing on a fixed interval."""
    while True:
        await run_match_refresh()
        await asyncio.sleep(interval_minutes * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database, run the refresh loop."""
    await init_db()

    settings = get_settings()
    refresh_task = None
    if settings.match_refresh_interval_minutes > 0:
        refresh_task = asyncio.create_task(
            match_refresh_loop(settings.match_refresh_interval_minutes)
        )

    yield

    if refresh_task is not None:
        refresh_task.cancel()
        with suppress(asyncio.CancelledError):
            await refresh_task
    await get_dispatcher().drain()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="SpaceMatch API",
    lifespan=lifespan,
    debug=settings.debug,
)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from spacematch.app.routes.matches import router as matches_router  # noqa: E402

app.include_router(matches_router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "spacematch"}


def run():
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run("spacematch.app.main:app", host="0.0.0.0", port=8000, reload=settings.debug)


if __name__ == "__main__":
    run()
