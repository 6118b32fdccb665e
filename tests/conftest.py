import os
import shutil
import tempfile
import uuid
from datetime import datetime, timedelta

# settings are read at import time, so point them at a scratch area first
_TMP = tempfile.mkdtemp(prefix="audio-marker-tests-")
os.environ["STORAGE_DIR"] = os.path.join(_TMP, "data")
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "data", "uploads")
os.environ["DB_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["PEAKS_STRATEGY"] = "pcm"
os.environ["PEAKS_PER_SECOND"] = "100"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.base import Base
from app.db.config import DatabaseSettings
from app.db.models.audio import Audio
from app.db.models.user import User, UserSession
from app.schemas.peaks import PeaksArtifact
from app.services.audio.cache import peaks_cache
from app.services.audio.peaks import PeakExtractor

_engine = create_engine(DatabaseSettings().sync_url)
Base.metadata.create_all(_engine)
_Session = sessionmaker(bind=_engine, expire_on_commit=False)


class FakeExtractor(PeakExtractor):
    """Stands in for ffmpeg: a fixed artifact per call, counting invocations."""

    def __init__(self, duration=2.0, rate=100, error=None):
        self.duration = duration
        self.rate = rate
        self.error = error
        self.calls = []

    async def extract(self, path):
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        n = int(self.duration * self.rate)
        peaks = [round((i % 10) / 10, 4) for i in range(n)]
        return PeaksArtifact.build(peaks, self.duration, self.rate)


@pytest.fixture(scope="session")
def client():
    from app.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def clean_uploads():
    yield
    shutil.rmtree(settings.UPLOAD_DIR, ignore_errors=True)
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)


@pytest.fixture
def fake_extractor():
    fake = FakeExtractor()
    previous = peaks_cache._extractor
    peaks_cache._extractor = fake
    yield fake
    peaks_cache._extractor = previous


@pytest.fixture
def db_session():
    db = _Session()
    yield db
    db.close()


@pytest.fixture
def make_user(db_session):
    def _make():
        user = User(id=str(uuid.uuid4()), email=f"{uuid.uuid4().hex}@example.com", name="tester")
        token = uuid.uuid4().hex
        db_session.add(user)
        db_session.add(UserSession(
            token=token,
            user_id=user.id,
            expires_at=datetime.utcnow() + timedelta(days=1),
        ))
        db_session.commit()
        return user.id, {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def make_audio(db_session):
    def _make(owner_id, *, is_public=False, with_file=True, content=b"ID3fake-mp3-bytes"):
        audio_id = str(uuid.uuid4())
        stored_name = f"{audio_id}.mp3"
        if with_file:
            with open(os.path.join(settings.UPLOAD_DIR, stored_name), "wb") as f:
                f.write(content)
        db_session.add(Audio(
            id=audio_id,
            name="take 1",
            original_file_name="take1.mp3",
            file_path=stored_name,
            is_public=is_public,
            created_by_id=owner_id,
        ))
        db_session.commit()
        return audio_id
    return _make
