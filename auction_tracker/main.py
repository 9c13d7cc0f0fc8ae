from fastapi import FastAPI
from auction_tracker.config import settings
from auction_tracker.db import Base, engine
import auction_tracker.models  # noqa: F401 ensure models are imported so tables are known
from auction_tracker.api.routes import router as api_router
from auction_tracker.utils import logger

# create FastAPI instance
app = FastAPI(title="Auction Tracker")
app.include_router(api_router)


@app.on_event("startup")
def on_startup_create_tables():
    # Ensure database tables are created on startup
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        # migrations may own the schema; keep serving
        logger.error("create_all failed: %s", e)


@app.on_event("startup")
def on_startup_scheduler():
    if not settings.scheduler_enabled:
        return
    from auction_tracker.pipeline import run_once
    from auction_tracker.scheduler import start_scheduler
    app.state.scheduler = start_scheduler(run_once, settings.scheduler_interval_hours)


@app.on_event("shutdown")
def on_shutdown_scheduler():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
