import sys
import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add project root to path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from config.settings_loader import get_server
from shared.state import get_dispatcher, get_scheduler, get_streak_service

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 API Starting up...")
    scheduler = get_scheduler()
    scheduler.initialize()

    dispatcher = get_dispatcher()
    dispatcher.start()
    # Startup work runs inside the dispatcher like any other event
    await dispatcher.submit(get_streak_service().startup)

    yield

    logger.info("🛑 API Shutting down...")
    await dispatcher.stop()
    scheduler.shutdown()

app = FastAPI(title="Streak", lifespan=lifespan)

# Browser extensions and the local UI call in from other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_origin_regex=r"(chrome|moz)-extension://.*",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Import and Include Routers ===
from routers import sites as sites_router
from routers import streaks as streaks_router
from routers import rules as rules_router
from routers import journal as journal_router
from routers import settings as settings_router
from routers import stream
app.include_router(sites_router.router)
app.include_router(streaks_router.router)
app.include_router(rules_router.router)
app.include_router(journal_router.router)
app.include_router(settings_router.router)
app.include_router(stream.router)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "version": "0.1.0",
        "dispatcher_running": get_dispatcher().running,
    }

if __name__ == "__main__":
    import uvicorn
    server = get_server()
    uvicorn.run("api:app", host=server.host, port=server.port)
