from contextlib import asynccontextmanager

from fastapi import FastAPI
from app.core.logging import logger
from app.db.session import db_manager
from app.api.routes.audio import router as audio_router
from app.api.routes.upload import router as upload_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    await db_manager.create_all()
    logger.info("DB tables ensured.")
    yield


app = FastAPI(title="Audio Marker API", lifespan=lifespan)

app.include_router(audio_router, prefix="/api/audio", tags=["audio"])
app.include_router(upload_router, prefix="/api", tags=["upload"])


@app.get("/health")
def health():
    return "SUCCESS"
