import io
import time
from datetime import datetime, timezone

import jwt
import pytest
from PIL import Image
from pydantic import SecretStr

from criador_mental.config import settings
from criador_mental.db.projects import ProjectRecord
from criador_mental.document.models import Page, Snapshot, new_project_pages

# Test configuration, applied before any app object reads it
TEST_JWT_SECRET = "test-secret-for-criador-mental-must-be-long-enough"
settings.jwt_secret = SecretStr(TEST_JWT_SECRET)
settings.jwt_algo = "HS256"
settings.jwt_audience = "authenticated"
settings.database_url = None
settings.autosave_delay_seconds = 0.01


@pytest.fixture
def make_token():
    def _make(
        user_id="user-1",
        email="ana@example.com",
        audience="authenticated",
        expired=False,
        secret=TEST_JWT_SECRET,
    ):
        now = int(time.time())
        payload = {
            "sub": user_id,
            "email": email,
            "aud": audience,
            "role": "authenticated",
            "iat": now - 3600 if expired else now,
            "exp": now - 10 if expired else now + 3600,
        }
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


@pytest.fixture
def ideas_snapshot():
    """[master, "Ideas"(Brain, Light)] with "Ideas" active."""
    return Snapshot(
        pages=(
            new_project_pages()[0],
            Page(id="ideas", name="Ideas", keywords=("Brain", "Light")),
        ),
        active_page_index=1,
    )


@pytest.fixture
def make_record():
    def _make(snapshot, project_id="project-1", owner_id="user-1", name="My Project"):
        now = datetime.now(timezone.utc)
        return ProjectRecord(
            id=project_id,
            owner_id=owner_id,
            name=name,
            snapshot=snapshot,
            created_at=now,
            last_modified=now,
        )

    return _make


@pytest.fixture
def png_bytes():
    def _make(size=(32, 16), color="red"):
        buffer = io.BytesIO()
        Image.new("RGB", size, color).save(buffer, format="PNG")
        return buffer.getvalue()

    return _make
