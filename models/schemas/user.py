from marshmallow import Schema, fields, pre_load, validate, EXCLUDE


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class UserCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    first_name = fields.String(required=True, data_key="firstName", validate=validate.Length(min=1, max=255))
    last_name = fields.String(load_default="", allow_none=True, data_key="lastName", validate=validate.Length(max=255))
    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            for key in ("firstName", "lastName", "email"):
                if key in data:
                    data[key] = _strip(data[key])
        return data


class UserLoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True, validate=validate.Length(min=1))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))


class VerifySchema(Schema):
    class Meta:
        unknown = EXCLUDE

    token = fields.String(required=True, validate=validate.Length(min=1))


class ResendVerificationSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True, validate=validate.Length(min=1))


class UserUpdateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    first_name = fields.String(data_key="firstName", validate=validate.Length(min=1, max=255))
    last_name = fields.String(allow_none=True, data_key="lastName", validate=validate.Length(max=255))


class UserOutSchema(Schema):
    """Public projection: never exposes the account or its password hash."""
    id = fields.String()
    first_name = fields.String(data_key="firstName")
    last_name = fields.String(data_key="lastName")
    email = fields.String()
