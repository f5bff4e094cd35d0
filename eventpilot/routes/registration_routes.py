from flask import Blueprint, jsonify, request, current_app
from eventpilot.exceptions import MissingFieldsError
from eventpilot.services import PaymentService, RegistrationService
from eventpilot.utils.log_buffer import LogBuffer

registration_bp = Blueprint("registration", __name__)


@registration_bp.route("/events/<int:event_id>/registrations", methods=["POST"])
def submit_registration(event_id):
    data = request.get_json(silent=True) or {}
    log_buffer = LogBuffer()
    result = RegistrationService.submit_registration(event_id, data, log_buffer=log_buffer)
    log_buffer.flush()
    return jsonify(result), 201


@registration_bp.route(
    "/events/<int:event_id>/registrations/<int:registration_id>/coupon", methods=["POST"]
)
def apply_coupon(event_id, registration_id):
    data = request.get_json(silent=True) or {}
    if not data.get("code"):
        raise MissingFieldsError(["code"])

    log_buffer = LogBuffer()
    result = RegistrationService.apply_coupon(
        event_id, registration_id, data["code"], log_buffer=log_buffer
    )
    log_buffer.flush()
    return jsonify(result), 200


@registration_bp.route(
    "/events/<int:event_id>/registrations/<int:registration_id>/coupon", methods=["DELETE"]
)
def remove_coupon(event_id, registration_id):
    log_buffer = LogBuffer()
    result = RegistrationService.remove_coupon(event_id, registration_id, log_buffer=log_buffer)
    log_buffer.flush()
    return jsonify(result), 200


@registration_bp.route(
    "/events/<int:event_id>/registrations/<int:registration_id>/confirm-payment",
    methods=["POST"],
)
def confirm_payment(event_id, registration_id):
    data = request.get_json(silent=True) or {}
    if not data.get("payment_intent_id"):
        raise MissingFieldsError(["payment_intent_id"])

    current_app.logger.info(
        f"Client confirmation for registration {registration_id} ({data['payment_intent_id']})"
    )
    result = PaymentService.confirm_registration_payment(
        event_id, registration_id, data["payment_intent_id"]
    )
    return jsonify(result), 200


@registration_bp.route("/payments/config", methods=["GET"])
def get_stripe_config():
    return jsonify(PaymentService.get_stripe_config()), 200
