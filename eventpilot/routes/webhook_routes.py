import hmac
from flask import Blueprint, jsonify, request, current_app
from eventpilot.exceptions import UnauthorizedError
from eventpilot.services import GmailIngestionService, PaymentService

webhook_bp = Blueprint("webhook", __name__)


@webhook_bp.route("/webhooks/stripe", methods=["POST"])
def stripe_webhook():
    payload = request.get_data()
    signature = request.headers.get("Stripe-Signature", "")
    result = PaymentService.handle_webhook_event(payload, signature)
    return jsonify(result), 200


@webhook_bp.route("/webhooks/cron/gmail", methods=["POST"])
def poll_gmail():
    expected = current_app.config.get("CRON_SECRET")
    provided = request.headers.get("X-Cron-Secret", "")
    if not expected or not hmac.compare_digest(provided, expected):
        current_app.logger.warning("Rejected Gmail cron trigger with invalid secret")
        raise UnauthorizedError("Invalid cron secret")

    data = request.get_json(silent=True) or {}
    query = data.get("q") or current_app.config.get("GMAIL_POLL_QUERY")
    results = GmailIngestionService.poll_all_mailboxes(query)
    return jsonify({"events": {str(k): v for k, v in results.items()}}), 200
