# uruoi/api/records/schemas.py
from datetime import timezone

from marshmallow import Schema, fields, validate, validates_schema, ValidationError

from uruoi.models.container import MAX_WEIGHT_GRAMS
from uruoi.models.water_record import (
    MAX_CAT_COUNT, MAX_NOTE_LENGTH, MAX_TEMPERATURE, MIN_CAT_COUNT, MIN_TEMPERATURE,
)

_weight = validate.Range(min=0, max=MAX_WEIGHT_GRAMS, min_inclusive=False)
_cat_count = validate.Range(min=MIN_CAT_COUNT, max=MAX_CAT_COUNT)
_temperature = validate.Range(min=MIN_TEMPERATURE, max=MAX_TEMPERATURE)
_note = validate.Length(max=MAX_NOTE_LENGTH)


class RecordStartSchema(Schema):
    """POST /api/records/start 설치 요청 스키마."""
    container_id = fields.Str(required=True)
    start_weight = fields.Float(required=True, validate=_weight)
    cat_count = fields.Int(required=True, validate=_cat_count)
    note = fields.Str(required=False, allow_none=True, validate=_note)
    date = fields.AwareDateTime(required=False, allow_none=True, default_timezone=timezone.utc)


class RecordFinishSchema(Schema):
    """POST /api/records/finish 회수 요청 스키마. next_start_weight가 있으면 회수 후 바로 다시 설치합니다."""
    container_id = fields.Str(required=True)
    end_weight = fields.Float(required=True, validate=validate.Range(min=0, max=MAX_WEIGHT_GRAMS))
    weather_condition = fields.Str(required=False, allow_none=True)
    temperature = fields.Float(required=False, allow_none=True, validate=_temperature)
    cat_count = fields.Int(required=False, allow_none=True, validate=_cat_count)
    note = fields.Str(required=False, allow_none=True, validate=_note)
    date = fields.AwareDateTime(required=False, allow_none=True, default_timezone=timezone.utc)
    next_start_weight = fields.Float(required=False, allow_none=True, validate=_weight)


class RecordStartUpdateSchema(Schema):
    """PATCH /api/records/<record_id>/start 설치 정보 수정 스키마."""
    start_time = fields.AwareDateTime(required=True, default_timezone=timezone.utc)
    start_weight = fields.Float(required=True, validate=_weight)
    note = fields.Str(required=False, allow_none=True, validate=_note)


class RecordUpdateSchema(Schema):
    """PUT /api/records/<record_id> 전체 수정 스키마."""
    start_time = fields.AwareDateTime(required=True, default_timezone=timezone.utc)
    end_time = fields.AwareDateTime(required=False, allow_none=True, default_timezone=timezone.utc)
    start_weight = fields.Float(required=True, validate=_weight)
    end_weight = fields.Float(required=False, allow_none=True, validate=validate.Range(min=0, max=MAX_WEIGHT_GRAMS))
    note = fields.Str(required=False, allow_none=True, validate=_note)

    @validates_schema
    def validate_end_pair(self, data, **kwargs):
        if (data.get('end_time') is None) != (data.get('end_weight') is None):
            raise ValidationError('회수 시각과 회수 무게는 함께 입력해야 합니다.', 'end_weight')


class RecordResponseSchema(Schema):
    id = fields.Str(dump_only=True)
    container_id = fields.Str()
    start_time = fields.DateTime()
    start_weight = fields.Float()
    end_time = fields.DateTime(allow_none=True)
    end_weight = fields.Float(allow_none=True)
    cat_count = fields.Int()
    weather_condition = fields.Str(allow_none=True)
    temperature = fields.Float(allow_none=True)
    note = fields.Str(allow_none=True)
    created_by_device_id = fields.Str(allow_none=True)
    is_active = fields.Bool(dump_only=True)
    amount = fields.Float(dump_only=True, allow_none=True)
    per_cat_amount = fields.Float(dump_only=True, allow_none=True)
