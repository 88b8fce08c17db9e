# backend/tests/conftest.py
from __future__ import annotations

import os
import tempfile

# must be set before moveout.config is imported anywhere
_DB_DIR = tempfile.mkdtemp(prefix="moveout-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/moveout_test.db"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["ITEM_RELOAD_DELAY_SECONDS"] = "0"
os.environ["START_RELOAD_INTERVAL_SECONDS"] = "0"
os.environ["RECALC_FALLBACK_DELAY_SECONDS"] = "0"
os.environ["POST_EXPORT_SETTLE_SECONDS"] = "0"
os.environ["RECONCILE_POLL_INTERVAL_SECONDS"] = "0"

import pytest  # noqa: E402

from moveout import models  # noqa: E402,F401
from moveout.db import Base, SessionLocal, engine  # noqa: E402

Base.metadata.create_all(bind=engine)


@pytest.fixture()
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()
