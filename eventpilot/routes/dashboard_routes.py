from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required, get_jwt_identity
from eventpilot.exceptions import MissingFieldsError
from eventpilot.services import (
    ConversationService,
    CouponService,
    EventService,
    GmailIngestionService,
    LedgerService,
    RegistrationService,
)
from eventpilot.utils.log_buffer import LogBuffer

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/events/<int:event_id>/coupons", methods=["GET"])
@jwt_required()
def list_coupons(event_id):
    EventService.get_managed_event(event_id, get_jwt_identity())
    instance_id = request.args.get("instance_id", type=int)
    if not instance_id:
        raise MissingFieldsError(["instance_id"])
    return jsonify({"coupons": CouponService.list_coupons(event_id, instance_id)}), 200


@dashboard_bp.route("/events/<int:event_id>/coupons", methods=["POST"])
@jwt_required()
def create_coupon(event_id):
    user_id = get_jwt_identity()
    EventService.get_managed_event(event_id, user_id)
    data = request.get_json(silent=True) or {}

    log_buffer = LogBuffer()
    coupon = CouponService.create_coupon(
        event_id, data.get("instance_id"), data, user_id=int(user_id), log_buffer=log_buffer
    )
    log_buffer.flush()
    return jsonify({"coupon": coupon.to_dict(redemptions=0)}), 201


@dashboard_bp.route("/events/<int:event_id>/coupons/<int:coupon_id>", methods=["GET"])
@jwt_required()
def get_coupon(event_id, coupon_id):
    EventService.get_managed_event(event_id, get_jwt_identity())
    coupon = CouponService.get_coupon(event_id, coupon_id)
    return jsonify({"coupon": coupon.to_dict(redemptions=CouponService.redemptions(coupon))}), 200


@dashboard_bp.route("/events/<int:event_id>/coupons/<int:coupon_id>", methods=["PUT"])
@jwt_required()
def update_coupon(event_id, coupon_id):
    user_id = get_jwt_identity()
    EventService.get_managed_event(event_id, user_id)
    data = request.get_json(silent=True) or {}

    log_buffer = LogBuffer()
    coupon = CouponService.update_coupon(
        event_id, coupon_id, data, user_id=int(user_id), log_buffer=log_buffer
    )
    log_buffer.flush()
    return jsonify({"coupon": coupon.to_dict(redemptions=CouponService.redemptions(coupon))}), 200


@dashboard_bp.route("/events/<int:event_id>/coupons/<int:coupon_id>", methods=["DELETE"])
@jwt_required()
def delete_coupon(event_id, coupon_id):
    user_id = get_jwt_identity()
    EventService.get_managed_event(event_id, user_id)

    log_buffer = LogBuffer()
    CouponService.delete_coupon(event_id, coupon_id, user_id=int(user_id), log_buffer=log_buffer)
    log_buffer.flush()
    return jsonify({"message": "Coupon deleted"}), 200


@dashboard_bp.route("/events/<int:event_id>/ledger", methods=["GET"])
@jwt_required()
def get_ledger(event_id):
    EventService.get_managed_event(event_id, get_jwt_identity())
    instance_id = request.args.get("instance_id", type=int)
    return jsonify(LedgerService.get_ledger(event_id, instance_id)), 200


@dashboard_bp.route("/events/<int:event_id>/gmail/ingest", methods=["POST"])
@jwt_required()
def ingest_gmail(event_id):
    EventService.get_managed_event(event_id, get_jwt_identity())
    data = request.get_json(silent=True) or {}
    result = GmailIngestionService.ingest_gmail_window(event_id, data.get("q"))
    return jsonify(result), 200


@dashboard_bp.route("/events/<int:event_id>/registrations", methods=["GET"])
@jwt_required()
def list_registrations(event_id):
    EventService.get_managed_event(event_id, get_jwt_identity())
    finalized = request.args.get("finalized")
    if finalized is not None:
        finalized = finalized.lower() in ["true", "1", "t"]
    result = RegistrationService.list_registrations(
        event_id,
        instance_id=request.args.get("instance_id", type=int),
        finalized=finalized,
        page=request.args.get("page", 1, type=int),
        size=request.args.get("size", 25, type=int),
    )
    return jsonify(result), 200


@dashboard_bp.route("/events/<int:event_id>/conversations", methods=["GET"])
@jwt_required()
def list_conversations(event_id):
    EventService.get_managed_event(event_id, get_jwt_identity())
    return jsonify({"conversations": ConversationService.list_conversations(event_id)}), 200


@dashboard_bp.route("/events/<int:event_id>/conversations/<int:conversation_id>", methods=["GET"])
@jwt_required()
def get_conversation(event_id, conversation_id):
    EventService.get_managed_event(event_id, get_jwt_identity())
    conversation = ConversationService.get_conversation(event_id, conversation_id)
    return jsonify({"conversation": conversation}), 200
