# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored next to the process by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Whole-operation attempts for stock mutations (first run + one retry)
    STOCK_MUTATION_ATTEMPTS = int(os.environ.get("STOCK_MUTATION_ATTEMPTS", "2"))
    STOCK_RETRY_BACKOFF = float(os.environ.get("STOCK_RETRY_BACKOFF", "0.05"))

    # Digits of the smallest currency unit (2 = cents, 0 = whole units)
    CURRENCY_DECIMALS = int(os.environ.get("CURRENCY_DECIMALS", "2"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
