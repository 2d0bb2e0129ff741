# uruoi/api/analytics/schemas.py
from datetime import timezone

from marshmallow import Schema, fields, validate


class PeriodQuerySchema(Schema):
    """GET /api/analytics/period 쿼리 파라미터 스키마."""
    period = fields.Str(load_default='week', validate=validate.OneOf(['week', 'month', 'year']))
    reference = fields.AwareDateTime(load_default=None, allow_none=True, default_timezone=timezone.utc)


class TimelineQuerySchema(Schema):
    limit = fields.Int(load_default=50, validate=validate.Range(min=1, max=500))


class IntakeBucketSchema(Schema):
    date = fields.DateTime()
    total_amount = fields.Float()
    label = fields.Str()


class PeriodSummarySchema(Schema):
    period = fields.Str()
    start = fields.DateTime()
    end = fields.DateTime()
    buckets = fields.List(fields.Nested(IntakeBucketSchema))
    average = fields.Float()
    previous_average = fields.Float()
    difference = fields.Float(allow_none=True)


class TimelineEventSchema(Schema):
    record_id = fields.Str()
    type = fields.Str()
    date = fields.DateTime()
    weight = fields.Float()
    container_name = fields.Str()
    amount = fields.Float(allow_none=True)
    weather_condition = fields.Str(allow_none=True)
    temperature = fields.Float(allow_none=True)
