from flask import Blueprint, request, jsonify, make_response
from eventpilot.exceptions import MissingFieldsError, ValidationError
from eventpilot.services import UserService

user_bp = Blueprint("user", __name__)


@user_bp.route("/signup", methods=["POST"])
def sign_up():
    user_data = request.get_json(silent=True)
    if not user_data:
        raise ValidationError("No data provided")

    required_fields = ["email", "password", "first_name", "last_name"]
    missing_fields = [field for field in required_fields if field not in user_data]
    if missing_fields:
        raise MissingFieldsError(missing_fields)

    result = UserService.sign_up(user_data)
    return make_response(jsonify(result), 201)


@user_bp.route("/signin", methods=["POST"])
def sign_in():
    user_data = request.get_json(silent=True)
    if not user_data:
        raise ValidationError("No data provided")

    missing_fields = [field for field in ["email", "password"] if field not in user_data]
    if missing_fields:
        raise MissingFieldsError(missing_fields)

    result = UserService.sign_in(user_data["email"], user_data["password"])
    return jsonify(result), 200
