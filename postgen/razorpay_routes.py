# razorpay_routes.py
import logging

from flask import Blueprint, current_app, jsonify

from .payments import (
    PaymentConfigError,
    PaymentError,
    grant_plan,
    parse_amount,
    parse_paid_plan,
)
from .services import body_email, current_services, json_body
from .user_store import UnreadableRecord

logger = logging.getLogger(__name__)

razorpay_bp = Blueprint("razorpay_bp", __name__)

INVALID_BODY = "Invalid JSON body"


@razorpay_bp.post("/api/create-order")
def create_order():
    """
    Crea un ordine Razorpay per il piano richiesto.
    Body JSON atteso: { "amount": 499, "plan": "starter" | "unlimited", "email": "..." }
    """
    data = json_body()
    if data is None:
        return jsonify(success=False, error=INVALID_BODY), 400
    try:
        amount = parse_amount(data.get("amount"))
        plan = parse_paid_plan(data.get("plan"))
    except ValueError as exc:
        return jsonify(success=False, error=str(exc)), 400

    email = body_email(data) or None
    gateway = current_services().gateway
    try:
        order = gateway.create_order(amount, plan, email)
    except PaymentConfigError as exc:
        logger.error("Payment gateway not configured: %s", exc)
        return jsonify(success=False, error=str(exc)), 500
    except PaymentError as exc:
        return jsonify(success=False, error=str(exc)), 502

    logger.info("Razorpay order %s created for %s (%s)", order.id, email or "anonymous", plan.value)
    return jsonify(
        success=True,
        orderId=order.id,
        amount=order.amount,
        currency=order.currency,
        razorpayKeyId=current_app.config["RAZORPAY_KEY_ID"],
    )


@razorpay_bp.post("/api/verify-payment")
def verify_payment():
    """
    Chiamata dalla pagina di pagamento dopo il checkout.
    Aggiorna il piano solo se la firma Razorpay è valida e il piano
    coincide con quello registrato nelle note dell'ordine.
    """
    data = json_body()
    if data is None:
        return jsonify(success=False, message=INVALID_BODY), 400
    order_id = data.get("razorpay_order_id")
    payment_id = data.get("razorpay_payment_id")
    signature = data.get("razorpay_signature")
    email = body_email(data)

    try:
        plan = parse_paid_plan(data.get("plan"))
    except ValueError as exc:
        return jsonify(success=False, message=str(exc)), 400
    if not email:
        return jsonify(success=False, message="Missing email"), 400

    services = current_services()
    try:
        valid = services.gateway.verify(order_id, payment_id, signature)
    except PaymentConfigError as exc:
        logger.error("Cannot verify payment: %s", exc)
        return jsonify(success=False, message=str(exc)), 500

    if not valid:
        logger.warning("Invalid Razorpay signature for order %s (%s)", order_id, email)
        return jsonify(success=False, message="Invalid signature"), 400

    # la firma copre solo order|payment: il piano si legge dall'ordine
    try:
        ordered = services.gateway.order_plan(str(order_id))
    except PaymentError as exc:
        return jsonify(success=False, message=str(exc)), 502
    if ordered is not plan:
        logger.warning("Order %s was for %s, client claimed %s (%s)",
                       order_id, ordered.value if ordered else "?", plan.value, email)
        return jsonify(success=False, message="Plan does not match order"), 400

    store = services.store
    try:
        with store.locked():
            user = grant_plan(store, email, plan)
    except UnreadableRecord as exc:
        logger.error("Cannot grant %s to %s: %s", plan.value, email, exc)
        return jsonify(success=False, message="User record needs manual repair"), 409

    logger.info("Payment %s verified: %s → %s", payment_id, email, plan.value)
    return jsonify(
        success=True,
        message="Payment verified!",
        plan=user.plan.value,
        credits=user.to_public()["credits"],
    )
