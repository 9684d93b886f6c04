import argparse
import logging
import uvicorn
from fastapi import FastAPI, Depends
from contextlib import asynccontextmanager

import sys
from pathlib import Path

# Add project root to path for package imports
base_dir = Path(__file__).parent
sys.path.insert(0, str(base_dir))

from db.database import init_db, get_conn, get_db
from config import load_config
from routes import languages, decks, imports, practice, backups, session  # Import routers
from utils.library import list_languages
from utils.session import SessionContext

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = load_config()["logging"]["level"]
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# First-run init
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: init DB and config
    configure_logging()
    init_db()
    with get_conn() as conn:
        SessionContext.load().resolve(conn)  # Seeds the sample language on first run
    yield


app = FastAPI(title="Sentence Paths", description="Local-first sentence practice with linear and spaced-repetition paths", lifespan=lifespan)

# Include routers
app.include_router(languages.router, prefix="/languages", tags=["languages"])
app.include_router(decks.router, prefix="/decks", tags=["decks"])
app.include_router(imports.router, prefix="/imports", tags=["imports"])
app.include_router(practice.router, prefix="/practice", tags=["practice"])
app.include_router(backups.router, prefix="/admin", tags=["admin"])
app.include_router(session.router, prefix="/session", tags=["session"])


@app.get("/")
async def home(conn=Depends(get_db)):
    """Languages with their decks' entry points."""
    return {"languages": list_languages(conn)}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sentence Paths App")
    parser.add_argument("--init", action="store_true", help="Initialize DB and config")
    parser.add_argument("--dev", action="store_true", help="Run in dev mode with reload")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    configure_logging()
    if args.init:
        init_db()
        logger.info("DB initialized and config copied to ~/.sentencepaths/")
        sys.exit(0)
    # Run server
    uvicorn.run("main:app", host="127.0.0.1", port=args.port, reload=args.dev, log_level="info")
