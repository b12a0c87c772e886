"""Request schemas for the quiz API."""

from __future__ import annotations

import re

from marshmallow import Schema, ValidationError, fields, validate

_PHONE_DIGITS = re.compile(r"\D")


def _validate_phone(value: str) -> None:
    if len(_PHONE_DIGITS.sub("", value or "")) < 10:
        raise ValidationError("Please provide a valid phone number.")


class StartQuizSchema(Schema):
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True)
    phone = fields.String(required=True, validate=_validate_phone)
    subject = fields.String(required=True, validate=validate.Length(min=1, max=255))


class ResumeQuizSchema(Schema):
    phone = fields.String(required=True, validate=_validate_phone)
    subject = fields.String(required=True, validate=validate.Length(min=1, max=255))
    name = fields.String(load_default=None, allow_none=True)
    email = fields.Email(load_default=None, allow_none=True)
    session_id = fields.Integer(load_default=None, allow_none=True)


class SaveAnswerSchema(Schema):
    question_id = fields.Integer(required=True)
    answer = fields.String(
        required=True,
        validate=validate.Regexp(r"^[A-Da-d]$", error="answer must be a single letter (a, b, c, or d)"),
    )


class SubmitQuizResponseSchema(Schema):
    # Only email drives the session lookup.
    email = fields.Email(required=True)
    name = fields.String(load_default=None, allow_none=True)
    phone = fields.String(load_default=None, allow_none=True)
    certified_user_skill_id = fields.Integer(load_default=None, allow_none=True)
    skip_paid_test = fields.Boolean(load_default=False)


class SubmitWithTokenSchema(Schema):
    email = fields.Email(required=True)
    token = fields.String(required=True, validate=validate.Regexp(r"\s*\S", error="token must not be blank"))
    certified_user_skill_id = fields.Integer(load_default=None, allow_none=True)


class AutoSubmitSchema(Schema):
    phone = fields.String(required=True, validate=validate.Length(min=1))
    subject = fields.String(required=True, validate=validate.Length(min=1))
