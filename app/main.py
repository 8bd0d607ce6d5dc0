import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from app.db.init_db import create_database
from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.core.config import settings
from app.core.exceptions import InvalidTransition, WorkflowError
from app.schemas.common import ErrorResponse
from app.api.v1.router import api_router

logger = logging.getLogger(__name__)


async def _completion_sweep_loop() -> None:
    """Background task: mark finished approved reservations as completed."""
    from app.services.sweep import complete_past_reservations

    while True:
        try:
            db = SessionLocal()
            try:
                count = complete_past_reservations(db)
                if count:
                    logger.info("Completed %d past reservation(s).", count)
            finally:
                db.close()
        except Exception:
            logger.exception("Error during reservation completion sweep.")
        await asyncio.sleep(settings.COMPLETION_SWEEP_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    sweep_task = asyncio.create_task(_completion_sweep_loop())
    yield

    # Shutdown: cancel background task
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    body = ErrorResponse(error=exc.error, message=exc.message)
    if isinstance(exc, InvalidTransition):
        body.current_status = exc.current
        body.requested_status = exc.requested
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"Hello": settings.PROJECT_NAME}
