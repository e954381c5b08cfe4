from dataclasses import dataclass
from typing import Optional

from flask import current_app, request

from .generation import GeminiClient
from .payments import PaymentGateway
from .user_store import open_user_store


@dataclass
class Services:
    store: object
    generator: GeminiClient
    gateway: PaymentGateway


def build_services(config) -> Services:
    return Services(
        store=open_user_store(config["USER_STORE_URL"]),
        generator=GeminiClient(
            api_key=config["GEMINI_API_KEY"],
            model=config["GEMINI_MODEL"],
            timeout=config["GEMINI_TIMEOUT"],
        ),
        gateway=PaymentGateway(
            key_id=config["RAZORPAY_KEY_ID"],
            key_secret=config["RAZORPAY_KEY_SECRET"],
            currency=config["RAZORPAY_CURRENCY"],
            timeout=config["RAZORPAY_TIMEOUT"],
        ),
    )


def current_services() -> Services:
    return current_app.extensions["postgen"]


def json_body() -> Optional[dict]:
    """Request JSON object; {} when absent, None when it is not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def body_email(data: dict) -> str:
    return str(data.get("email") or "").strip()
