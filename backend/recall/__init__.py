from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recall.config import settings
from recall.db import init_all_databases


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_all_databases(settings.data_dir)
    from recall.services.task_registry import recover_stuck_sessions

    await recover_stuck_sessions()
    yield


def create_app() -> FastAPI:
    application = FastAPI(
        title="Recall Backend", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from recall.routers import ai_review, health, review

    application.include_router(health.router)
    application.include_router(
        review.router, prefix="/review", tags=["review"]
    )
    application.include_router(
        ai_review.router, prefix="/ai-review", tags=["ai-review"]
    )

    return application


app = create_app()
