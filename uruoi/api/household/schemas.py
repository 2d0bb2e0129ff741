# uruoi/api/household/schemas.py
from marshmallow import Schema, fields, validate


class HouseholdJoinSchema(Schema):
    """POST /api/household/join 요청 스키마."""
    household_id = fields.Str(
        required=True,
        validate=validate.Length(min=1),
        error_messages={"required": "참여할 공유 ID(household_id)는 필수입니다."}
    )


class HouseholdStatusSchema(Schema):
    is_syncing = fields.Bool()
    household_id = fields.Str(allow_none=True)
    syncing_household_id = fields.Str(allow_none=True)
    created_household_id = fields.Str(allow_none=True)
    device_id = fields.Str()
    deferred_record_ids = fields.List(fields.Str())
    last_error = fields.Str(allow_none=True)
    inactive_subscriptions = fields.List(fields.Str())


class RestorePreviewSchema(Schema):
    household_id = fields.Str()
    latest_record_time = fields.DateTime(allow_none=True)
