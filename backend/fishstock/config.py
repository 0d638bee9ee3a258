# backend/fishstock/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fishstock.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///fishstock.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Header set by the upstream auth gateway carrying the authenticated principal id
    PRINCIPAL_HEADER = os.environ.get("PRINCIPAL_HEADER", "X-Principal-Id")

    # Unit-of-work retry policy for optimistic locking / lock contention
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))
    STOCK_RETRY_BACKOFF = float(os.environ.get("STOCK_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    LIST_LIMIT_DEFAULT = 200
    LIST_LIMIT_MAX = int(os.environ.get("LIST_LIMIT_MAX", "500"))
