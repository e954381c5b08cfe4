"""
settings.py – environment driven configuration.

Everything is read once at import time; `.env` in the working directory is
honoured. `backend.create_app()` copies these values into `app.config`, so
tests override them there instead of touching the environment.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in ("0", "false", "no", "off", "")


# ─────────────────────────────────────────────────────────────
# SERVER
# ─────────────────────────────────────────────────────────────
PORT = int(os.getenv("PORT", "10000"))
STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(os.getcwd(), "static"))
FRONT_ORIGIN = os.getenv("FRONT_ORIGIN", "*")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ─────────────────────────────────────────────────────────────
# STORE
# ─────────────────────────────────────────────────────────────
# json:///users.json  |  sqlite:///users.db  |  mysql+pool://user:pw@host:3306/db
USER_STORE_URL = os.getenv("USER_STORE_URL", "json:///users.json")

# ─────────────────────────────────────────────────────────────
# GEMINI
# ─────────────────────────────────────────────────────────────
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_TIMEOUT = float(os.getenv("GEMINI_TIMEOUT", "30"))
STRICT_OPTIONS = _flag("STRICT_OPTIONS", "1")

# ─────────────────────────────────────────────────────────────
# RAZORPAY
# ─────────────────────────────────────────────────────────────
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
RAZORPAY_CURRENCY = os.getenv("RAZORPAY_CURRENCY", "INR")
RAZORPAY_TIMEOUT = float(os.getenv("RAZORPAY_TIMEOUT", "30"))


def as_config() -> dict:
    return {
        "PORT": PORT,
        "STATIC_DIR": STATIC_DIR,
        "FRONT_ORIGIN": FRONT_ORIGIN,
        "LOG_LEVEL": LOG_LEVEL,
        "USER_STORE_URL": USER_STORE_URL,
        "GEMINI_API_KEY": GEMINI_API_KEY,
        "GEMINI_MODEL": GEMINI_MODEL,
        "GEMINI_TIMEOUT": GEMINI_TIMEOUT,
        "STRICT_OPTIONS": STRICT_OPTIONS,
        "RAZORPAY_KEY_ID": RAZORPAY_KEY_ID,
        "RAZORPAY_KEY_SECRET": RAZORPAY_KEY_SECRET,
        "RAZORPAY_CURRENCY": RAZORPAY_CURRENCY,
        "RAZORPAY_TIMEOUT": RAZORPAY_TIMEOUT,
    }
