"""Dump schemas for session questions."""

from __future__ import annotations

from marshmallow import Schema, fields


class QuestionSchema(Schema):
    id = fields.Integer(dump_only=True)
    session_id = fields.Integer(dump_only=True)
    question_no = fields.Integer(dump_only=True)
    question = fields.String(attribute="prompt", dump_only=True)
    options = fields.Dict(keys=fields.String(), values=fields.String(), dump_only=True, allow_none=True)
    answer = fields.String(dump_only=True)
    answered = fields.Boolean(dump_only=True)
    status = fields.String(dump_only=True)
    tier = fields.String(dump_only=True, allow_none=True)
    scenario = fields.String(dump_only=True, allow_none=True)
    updated_at = fields.DateTime(dump_only=True)


class SessionSchema(Schema):
    id = fields.Integer(dump_only=True)
    user_id = fields.Integer(dump_only=True)
    subject = fields.String(dump_only=True, allow_none=True)
    external_user_ref = fields.String(dump_only=True, allow_none=True)
    created_at = fields.DateTime(dump_only=True)
    quiz_completed = fields.Boolean(dump_only=True)
    quiz_analysis_generated = fields.Boolean(dump_only=True)
    reconciliation_fired_at = fields.DateTime(dump_only=True, allow_none=True)
    order_id = fields.Integer(dump_only=True, allow_none=True)
    questions = fields.List(fields.Nested(QuestionSchema), dump_only=True)
