# uruoi/api/containers/schemas.py
from marshmallow import Schema, fields, validate, validates, ValidationError

from uruoi.models.container import MAX_NAME_LENGTH, MAX_WEIGHT_GRAMS, has_control_characters


def _validate_container_name(value):
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError("그릇 이름을 입력해 주세요.")
    if len(trimmed) > MAX_NAME_LENGTH:
        raise ValidationError(f"그릇 이름은 {MAX_NAME_LENGTH}자 이내로 입력해 주세요.")
    if has_control_characters(trimmed):
        raise ValidationError("그릇 이름에 사용할 수 없는 문자가 포함되어 있습니다.")


class ContainerCreateSchema(Schema):
    """POST /api/containers/ 그릇 추가 요청 스키마."""
    name = fields.Str(required=True, validate=_validate_container_name)
    empty_weight = fields.Float(required=True, validate=validate.Range(min=0, max=MAX_WEIGHT_GRAMS))


class ContainerUpdateSchema(Schema):
    """PATCH /api/containers/<container_id> 부분 수정 스키마."""
    name = fields.Str(validate=_validate_container_name)
    empty_weight = fields.Float(validate=validate.Range(min=0, max=MAX_WEIGHT_GRAMS))


class ContainerReorderSchema(Schema):
    """PUT /api/containers/order 정렬 순서 변경 스키마."""
    ids = fields.List(fields.Str(), required=True)

    @validates('ids')
    def validate_ids(self, value, **kwargs):
        if not value:
            raise ValidationError("정렬할 그릇 ID 목록이 비어 있습니다.")


class ContainerResponseSchema(Schema):
    id = fields.Str(dump_only=True)
    name = fields.Str()
    empty_weight = fields.Float()
    is_archived = fields.Bool()
    created_at = fields.DateTime()
    sort_order = fields.Int()
