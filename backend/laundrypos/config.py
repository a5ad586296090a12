# backend/laundrypos/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/laundrypos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///laundrypos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Window (either side of now) in which an identical payment is treated as a resubmission
    DUPLICATE_PAYMENT_WINDOW_SECONDS = _int_env("DUPLICATE_PAYMENT_WINDOW_SECONDS", 60)

    # Receipt numbers are regenerated on a uniqueness collision at most this many times
    RECEIPT_NUMBER_MAX_ATTEMPTS = _int_env("RECEIPT_NUMBER_MAX_ATTEMPTS", 5)

    # Spend (in currency units) that earns one loyalty point before tier multipliers
    LOYALTY_SPEND_PER_POINT = _int_env("LOYALTY_SPEND_PER_POINT", 20000)

    # Owner contact that receives the daily closing report; empty disables it
    DAILY_REPORT_RECIPIENT = os.environ.get("DAILY_REPORT_RECIPIENT", "")
