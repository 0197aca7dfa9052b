import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from .api.routes import schedules, classes, blocks, availability, bookings
from .db.session import Base, engine
from .config import get_settings
from .workers.scheduler import get_scheduler

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Classbook API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(schedules.router, prefix="/api/v1")
app.include_router(classes.router, prefix="/api/v1")
app.include_router(blocks.router, prefix="/api/v1")
app.include_router(availability.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info(
        "Handled request",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
        },
    )
    return response


@app.on_event("startup")
async def startup_event() -> None:
    Base.metadata.create_all(bind=engine)
    if settings.scheduler_enabled:
        scheduler = get_scheduler()
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Background scheduler started")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
