"""FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from pulse_api.deps import close_deps, init_deps
from pulse_api.routers import health, jobs, pages


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_deps()
    yield
    await close_deps()


app = FastAPI(
    title="Comment Pulse API",
    description="Enqueue Graph ingestion jobs and inspect the job queue",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(jobs.router, prefix="/api")
app.include_router(pages.router, prefix="/api")
