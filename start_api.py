#!/usr/bin/env python3
"""
Wait for the database, run migrations (same DATABASE_URL as the app), then uvicorn.
"""
import os
import sys

# 1) Wait for DB
import wait_for_db  # noqa: F401

# 2) Run migrations using the same settings as the app
from pickups.core.config import settings
from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Start uvicorn (replace current process)
port = os.getenv("PORT", "8000")
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "pickups.main:app", "--host", "0.0.0.0", "--port", port],
)
