from marshmallow import EXCLUDE, Schema, fields, validate, validates, pre_load

from models.schemas.common import validate_rating, validate_duration, iso_utc


def _strip(data, *names):
    if not isinstance(data, dict):
        return data
    data = dict(data)
    for name in names:
        if isinstance(data.get(name), str):
            data[name] = data[name].strip()
    return data


class MovieCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.String(required=True, validate=validate.Length(min=1, max=200))
    realisator = fields.String(required=True, validate=validate.Length(max=100))
    rating = fields.Integer(required=True, strict=True)
    duration_minutes = fields.Integer(allow_none=True, load_default=None, data_key="durationMinutes")

    @pre_load
    def _strip_text(self, data, **kwargs):
        return _strip(data, "name", "realisator")

    @validates("rating")
    def _validate_rating(self, value, **kwargs):
        validate_rating(value)

    @validates("duration_minutes")
    def _validate_duration(self, value, **kwargs):
        validate_duration(value)


class MovieUpdateSchema(Schema):
    # All optional, but validate if present
    class Meta:
        unknown = EXCLUDE

    name = fields.String(validate=validate.Length(min=1, max=200))
    realisator = fields.String(allow_none=True, validate=validate.Length(max=100))
    rating = fields.Integer(strict=True)
    duration_minutes = fields.Integer(allow_none=True, data_key="durationMinutes")

    @pre_load
    def _strip_text(self, data, **kwargs):
        return _strip(data, "name", "realisator")

    @validates("rating")
    def _validate_rating(self, value, **kwargs):
        validate_rating(value)

    @validates("duration_minutes")
    def _validate_duration(self, value, **kwargs):
        validate_duration(value)


class MovieOutSchema(Schema):
    id = fields.String()
    name = fields.String()
    realisator = fields.String(allow_none=True)
    rating = fields.Integer()
    duration_minutes = fields.Integer(allow_none=True, data_key="durationMinutes")
    created_at = fields.Function(lambda obj: iso_utc(obj.created_at), data_key="createdAt")
    updated_at = fields.Function(lambda obj: iso_utc(obj.updated_at), data_key="updatedAt")
