from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import literal
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.core.database import SessionDep, init_db
from app.core.logging import app_logger
from app.core.middleware import setup_middleware
from app.core.settings import settings
from app.src.jobs.fines_scheduler import accrual_scheduler
from app.src.routes import admin, books, borrowings, fines

# Import all models to ensure they're registered with SQLModel metadata
from app.src.models import (  # noqa: F401
    Book,
    Borrowing,
    BorrowingExtension,
    BorrowingNotice,
    Fine,
    Notification,
    User,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_logger.info("Starting up...", extra={"event_type": "startup"})
    await init_db()
    if settings.scheduler_enabled:
        accrual_scheduler.start()
    app_logger.info("DB connected", extra={"event_type": "startup"})
    yield
    app_logger.info("Shutting down...", extra={"event_type": "shutdown"})
    await accrual_scheduler.stop()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Error handlers and request logging
setup_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(borrowings.router, prefix="/borrowings", tags=["borrowings"])
app.include_router(fines.router, prefix="/fines", tags=["fines"])
app.include_router(books.router, prefix="/books", tags=["books"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


@app.get("/health")
async def health_check():
    """Health check for Docker healthcheck"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "library-circulation-api",
        "scheduler": "running" if accrual_scheduler.running else "stopped",
    }


@app.get("/readiness")
async def readiness_check(session: SessionDep):
    """Readiness check with database connectivity"""
    try:
        await session.exec(select(literal(1)))
    except SQLAlchemyError as e:
        raise HTTPException(503, f"Database not ready: {e}")
    return {
        "status": "ready",
        "database": "connected",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
