from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///burial.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    BURIAL_TIMEZONE = os.getenv("BURIAL_TIMEZONE", "Asia/Kuala_Lumpur")
    MANDATORY_STAFF_ROLES = ("GRAVE_DIGGER", "BODY_WASHER")
    STAFF_NOT_REQUIRED_IDS = {
        "GRAVE_DIGGER": "not-needed-penggali",
        "BODY_WASHER": "not-needed-pemandi",
    }
    PAYMENT_DEADLINE_DAYS = int(os.getenv("PAYMENT_DEADLINE_DAYS", "3"))
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "MYR")

    # None resolves to <instance_path>/storage at runtime.
    STORAGE_ROOT = os.getenv("STORAGE_ROOT")
    STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "/storage")
