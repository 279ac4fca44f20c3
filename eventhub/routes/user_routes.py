from flask import Blueprint, current_app, jsonify, make_response, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from eventhub.extensions import limiter
from eventhub.repositories.user_repository import UserRepository
from eventhub.services.user_service import UserService

user_bp = Blueprint("user", __name__)


def _missing_fields_response(user_data, required_fields):
    missing_fields = [field for field in required_fields if not user_data.get(field)]
    if missing_fields:
        return (
            jsonify({"error": "Missing required fields", "missing_fields": missing_fields}),
            400,
        )
    return None


@user_bp.route("/signup", methods=["POST"])
@limiter.limit("10 per minute")
def sign_up():
    user_data = request.get_json(silent=True)
    if not user_data:
        return jsonify({"error": "No data provided"}), 400

    missing = _missing_fields_response(
        user_data, ["email", "password", "first_name", "last_name"]
    )
    if missing:
        return missing

    try:
        result = UserService.sign_up(user_data)
        return make_response(jsonify(result), 201)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@user_bp.route("/signin", methods=["POST"])
@limiter.limit("20 per minute")
def sign_in():
    user_data = request.get_json(silent=True)
    if not user_data:
        return jsonify({"error": "No data provided"}), 400

    missing = _missing_fields_response(user_data, ["email", "password"])
    if missing:
        return missing

    try:
        result = UserService.sign_in(user_data["email"], user_data["password"])
        return make_response(jsonify(result), 200)
    except ValueError as e:
        current_app.logger.warning(f"Sign-in failed: {e}")
        return jsonify({"error": str(e)}), 401


@user_bp.route("/validate-token", methods=["GET"])
@jwt_required()
def validate_token():
    current_user = UserRepository().find_by_id(int(get_jwt_identity()))
    if not current_user:
        return jsonify({"error": "User not found"}), 404
    return jsonify({"valid": True, "user": current_user.to_dict()})
