import re

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    pre_load,
    validate,
    validates,
    validates_schema,
)

from models.schemas.common import iso_utc

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 100


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def check_password_policy(value: str) -> None:
    if not PASSWORD_MIN_LENGTH <= len(value) <= PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters long."
        )
    problems = []
    if not re.search(r"[a-z]", value):
        problems.append("a lowercase letter")
    if not re.search(r"[A-Z]", value):
        problems.append("an uppercase letter")
    if not re.search(r"\d", value):
        problems.append("a digit")
    if problems:
        raise ValidationError("Password must contain " + ", ".join(problems) + ".")


class RegisterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.String(required=True, load_only=True)
    confirm_password = fields.String(required=True, load_only=True, data_key="confirmPassword")

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = _norm_email(data["email"])
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        check_password_policy(value)

    @validates_schema
    def validate_confirmation(self, data, **kwargs):
        if "password" in data and data.get("confirm_password") != data["password"]:
            raise ValidationError(
                "Password and confirmation password do not match.", field_name="confirmPassword"
            )


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = _norm_email(data["email"])
        return data


class RefreshSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    refresh_token = fields.String(required=True, data_key="refreshToken")

    @validates("refresh_token")
    def validate_refresh_token(self, value, **kwargs):
        if not value.strip():
            raise ValidationError("Refresh token is required.")


class AuthResponseSchema(Schema):
    token = fields.String()
    refresh_token = fields.String(data_key="refreshToken")
    email = fields.String()
    expires_at = fields.Function(lambda obj: iso_utc(obj.expires_at), data_key="expiresAt")


class UserOutSchema(Schema):
    id = fields.String()
    email = fields.String()
    created_at = fields.Function(lambda obj: iso_utc(obj.created_at), data_key="createdAt")
    last_login_at = fields.Function(lambda obj: iso_utc(obj.last_login_at), data_key="lastLoginAt")
