import os
import tempfile

import pytest

# Configure the app before any dripscore module reads the environment.
_DB_DIR = tempfile.mkdtemp(prefix="dripscore-tests-")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["RATE_LIMIT_PER_IP"] = "1000/hour"
os.environ["DAILY_ANALYSIS_CAP"] = "1000"


@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient

    from dripscore.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def flat_json():
    """Five categories that all came back as 7."""
    names = [
        "Overall Style", "Color Coordination", "Fit & Proportion",
        "Accessories", "Style Expression",
    ]
    return {
        "totalScore": 7,
        "breakdown": [{"category": n, "score": 7, "emoji": "👕"} for n in names],
        "feedback": "Everything is fine.",
    }
