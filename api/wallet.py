"""
Wallet pass endpoints for the mobile app
"""
import structlog
from flask import Blueprint, Response, g, jsonify, request, url_for

from errors import LoyaltyCardMissingError, NotFoundError, OrderingError
from .auth import customer_required, get_platform

logger = structlog.get_logger(__name__)

wallet_bp = Blueprint("wallet", __name__)

PKPASS_MIMETYPE = "application/vnd.apple.pkpass"


@wallet_bp.route("/wallet/apple", methods=["GET"])
@customer_required
def apple_pass_url():
    # The app opens this link in a browser, which cannot send the bearer token
    if not g.customer.loyalty_card:
        raise LoyaltyCardMissingError()
    customer_id = g.customer.customer_id
    token = get_platform().signed_urls.sign(customer_id)
    url = url_for("wallet.apple_pass_download", customer_id=customer_id, token=token, _external=True)
    return jsonify({"data": {"url": url}})


@wallet_bp.route("/wallet/apple/download/<int:customer_id>", methods=["GET"])
def apple_pass_download(customer_id):
    platform = get_platform()
    platform.signed_urls.verify(request.args.get("token"), customer_id)
    customer = platform.customer_repo.get_customer(customer_id)
    if not customer:
        raise NotFoundError("Cliente no encontrado.")

    try:
        pass_data = platform.apple_wallet.generate_pass(customer)
    except OrderingError:
        raise
    except Exception as e:
        logger.error("apple_pass_generation_failed", customer_id=customer_id, error=str(e))
        return jsonify({"message": "Error generando el pase de Apple Wallet."}), 500

    return Response(pass_data, mimetype=PKPASS_MIMETYPE,
                    headers={"Content-Disposition": 'attachment; filename="loyalty-card.pkpass"'})


@wallet_bp.route("/wallet/google", methods=["GET"])
@customer_required
def google_save_url():
    if not g.customer.loyalty_card:
        raise LoyaltyCardMissingError()

    try:
        url = get_platform().google_wallet.generate_save_url(g.customer)
    except OrderingError:
        raise
    except Exception as e:
        logger.error("google_pass_generation_failed", customer_id=g.customer.customer_id, error=str(e))
        return jsonify({"message": "Error generando el pase de Google Wallet."}), 500

    return jsonify({"data": {"url": url}})
