# uruoi/schemas/sync_schemas.py
"""
Firestore 'households/{householdId}/containers|records' 문서와 엔티티 사이의 변환 스키마.

문서 필드 이름은 모든 기기가 공유하는 camelCase(data_key)를 그대로 사용하고,
엔티티 쪽은 snake_case 속성을 사용합니다. 검증은 구조적인 규칙만 적용합니다.
(이름 길이나 메모 길이 같은 입력 규칙은 엔티티 검증에서 처리합니다.)
"""
from typing import Any, Dict, Optional

from marshmallow import (
    Schema, fields, validate, validates_schema, post_load, ValidationError, EXCLUDE
)

from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.utils.datetime_utils import DateTimeUtils


class FirestoreTimestamp(fields.Field):
    """
    datetime <-> Firestore Timestamp 필드.
    직렬화 시 UTC datetime을 그대로 넘겨 Firestore가 Timestamp로 저장하게 하고,
    역직렬화 시 Timestamp/datetime/ISO 문자열을 모두 UTC datetime으로 변환합니다.
    """
    def _serialize(self, value, attr, obj, **kwargs):
        if value is None:
            return None
        return DateTimeUtils.for_firestore(value)

    def _deserialize(self, value, attr, data, **kwargs):
        try:
            return DateTimeUtils.validate_datetime_field(value, attr or 'timestamp')
        except ValueError as e:
            raise ValidationError(str(e)) from e


class ContainerDocumentSchema(Schema):
    """containers 컬렉션 문서 스키마."""
    class Meta:
        unknown = EXCLUDE  # 새 버전 앱이 추가한 필드는 무시

    id = fields.Str(required=True, validate=validate.Length(min=1))
    name = fields.Str(required=True)
    empty_weight = fields.Float(required=True, data_key='emptyWeight', validate=validate.Range(min=0))
    is_archived = fields.Bool(required=True, data_key='isArchived')
    created_at = FirestoreTimestamp(required=True, data_key='createdAt')
    sort_order = fields.Int(required=True, data_key='sortOrder')

    @post_load
    def make_container(self, data, **kwargs) -> Container:
        return Container(**data)


class RecordDocumentSchema(Schema):
    """records 컬렉션 문서 스키마."""
    class Meta:
        unknown = EXCLUDE

    id = fields.Str(required=True, validate=validate.Length(min=1))
    container_id = fields.Str(required=True, data_key='containerId', validate=validate.Length(min=1))
    start_time = FirestoreTimestamp(required=True, data_key='startTime')
    start_weight = fields.Float(required=True, data_key='startWeight', validate=validate.Range(min=0, min_inclusive=False))
    end_time = FirestoreTimestamp(allow_none=True, load_default=None, data_key='endTime')
    end_weight = fields.Float(allow_none=True, load_default=None, data_key='endWeight', validate=validate.Range(min=0))
    cat_count = fields.Int(required=True, data_key='catCount', validate=validate.Range(min=1))
    weather_condition = fields.Str(allow_none=True, load_default=None, data_key='weatherCondition')
    temperature = fields.Float(allow_none=True, load_default=None)
    note = fields.Str(allow_none=True, load_default=None)
    created_by_device_id = fields.Str(allow_none=True, load_default=None, data_key='createdByDeviceId')

    @validates_schema
    def validate_end_fields(self, data, **kwargs):
        """회수 시각/무게는 함께 존재해야 하고, 회수 무게는 설치 무게를 넘을 수 없습니다."""
        end_time = data.get('end_time')
        end_weight = data.get('end_weight')
        if (end_time is None) != (end_weight is None):
            raise ValidationError("endTime과 endWeight는 함께 존재해야 합니다.", 'endWeight')
        start_weight = data.get('start_weight')
        if end_weight is not None and start_weight is not None and end_weight > start_weight:
            raise ValidationError("endWeight는 startWeight보다 클 수 없습니다.", 'endWeight')

    @post_load
    def make_record(self, data, **kwargs) -> WaterRecord:
        return WaterRecord(**data)


container_document_schema = ContainerDocumentSchema()
record_document_schema = RecordDocumentSchema()


def _encode(schema: Schema, entity: Any) -> Dict[str, Any]:
    document = schema.dump(entity)
    errors = schema.validate(document)
    if errors:
        raise ValidationError(errors)
    return document


def encode_container(container: Container) -> Dict[str, Any]:
    """Container -> Firestore 문서 딕셔너리. 구조가 잘못되면 ValidationError."""
    return _encode(container_document_schema, container)


def encode_record(record: WaterRecord) -> Dict[str, Any]:
    """WaterRecord -> Firestore 문서 딕셔너리. 구조가 잘못되면 ValidationError."""
    return _encode(record_document_schema, record)


def decode_container(document: Optional[Dict[str, Any]]) -> Container:
    """Firestore 문서 -> Container. 잘못된 문서는 ValidationError."""
    if not isinstance(document, dict):
        raise ValidationError("문서가 비어 있거나 딕셔너리가 아닙니다.")
    return container_document_schema.load(document)


def decode_record(document: Optional[Dict[str, Any]]) -> WaterRecord:
    """Firestore 문서 -> WaterRecord. 잘못된 문서는 ValidationError."""
    if not isinstance(document, dict):
        raise ValidationError("문서가 비어 있거나 딕셔너리가 아닙니다.")
    return record_document_schema.load(document)
