"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- GET  /auth/me
- POST /auth/logout

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens (JWTs signed with HS256) and opaque refresh tokens
- Stores one refresh token per user; refresh extends it instead of rotating it
- Business rules live in services.auth_service; this module only maps HTTP in and out
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g

from models.schemas.user import AuthResponseSchema, UserOutSchema
from services.auth_service import AuthService
from utils.decorators import jwt_required

bp = Blueprint("auth", __name__, url_prefix="/auth")

auth_response_schema = AuthResponseSchema()
user_out_schema = UserOutSchema()


def _payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


@bp.post("/register")
def register():
    """
    Register a new user and start a session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            confirmPassword: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      400:
        description: Validation error or email already registered
    """
    payload = _payload()
    result = AuthService().register(
        payload.get("email"), payload.get("password"), payload.get("confirmPassword")
    )
    return jsonify(auth_response_schema.dump(result)), 200


@bp.post("/login")
def login():
    """
    Login: return access token and a new refresh token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Unauthorized
    """
    payload = _payload()
    result = AuthService().login(payload.get("email"), payload.get("password"))
    return jsonify(auth_response_schema.dump(result)), 200


@bp.post("/refresh")
def refresh():
    """
    Exchange a refresh token for a new access token.
    The refresh token keeps its value; only its expiry is extended.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      400:
        description: Missing refresh token
      401:
        description: Invalid or expired refresh token
    """
    result = AuthService().refresh(_payload().get("refreshToken"))
    return jsonify(auth_response_schema.dump(result)), 200


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
      404:
        description: User no longer exists
    """
    return jsonify(user_out_schema.dump(g.current_user)), 200


@bp.post("/logout")
@jwt_required()
def logout():
    """
    Logout: clears the user's refresh token
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    AuthService().logout(g.current_user.id)
    return jsonify({"message": "Logged out successfully."}), 200
