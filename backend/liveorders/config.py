# Overview: Environment-driven configuration for the app, transport and delivery queue.
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/liveorders.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///liveorders.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Day boundaries for the reconciliation key, unless the tenant sets its own
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "America/Sao_Paulo")

    # WhatsApp transport server (exposes /send and /status per tenant)
    WHATSAPP_API_URL = os.environ.get("WHATSAPP_API_URL", "http://localhost:3333")
    WHATSAPP_SEND_TIMEOUT = float(os.environ.get("WHATSAPP_SEND_TIMEOUT", "30"))

    # Outbound delivery queue pacing
    QUEUE_DEFAULT_DELAY_MS = int(os.environ.get("QUEUE_DEFAULT_DELAY_MS", "2000"))
    QUEUE_BACKOFF_STEP_MS = int(os.environ.get("QUEUE_BACKOFF_STEP_MS", "2000"))
    QUEUE_MAX_ATTEMPTS = int(os.environ.get("QUEUE_MAX_ATTEMPTS", "3"))

    # Regional 9th-digit rule for send-form phones
    PHONE_ADD_NINTH_DIGIT_MAX_DDD = int(os.environ.get("PHONE_ADD_NINTH_DIGIT_MAX_DDD", "30"))
    PHONE_REMOVE_NINTH_DIGIT_MIN_DDD = int(os.environ.get("PHONE_REMOVE_NINTH_DIGIT_MIN_DDD", "31"))
