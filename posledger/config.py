# posledger/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file in the working directory unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///posledger.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Returns are accepted for sales completed on or after midnight N days ago
    RETURN_WINDOW_DAYS = int(os.environ.get("RETURN_WINDOW_DAYS", "3"))

    # Products with stock and no OUT movement for this many days are dead stock
    DEAD_STOCK_DAYS = int(os.environ.get("DEAD_STOCK_DAYS", "90"))

    # Attempts for operations that hit lock or version conflicts
    LOCK_RETRY_ATTEMPTS = int(os.environ.get("LOCK_RETRY_ATTEMPTS", "3"))

    # Callable(tenant_id, products) handed low-stock products after a sale commits
    LOW_STOCK_NOTIFIER = None
