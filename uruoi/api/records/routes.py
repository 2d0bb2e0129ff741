# uruoi/api/records/routes.py
from flask import Blueprint, request, jsonify, current_app

from .schemas import (
    RecordStartSchema,
    RecordFinishSchema,
    RecordStartUpdateSchema,
    RecordUpdateSchema,
    RecordResponseSchema
)
from .services import DEFAULT_HISTORY_LIMIT

records_bp = Blueprint('records_bp', __name__)


def _dump(service, records):
    """기록 목록을 응답 형식으로 변환하고, 이 기기에서 작성한 기록인지(is_own) 표시합니다."""
    items = RecordResponseSchema(many=True).dump(records)
    for item, record in zip(items, records):
        item['is_own'] = service.is_own_record(record)
    return items


@records_bp.route('/active', methods=['GET'])
def get_active_records():
    """모든 그릇의 진행 중 기록 조회."""
    service = current_app.services['records']
    return jsonify(_dump(service, service.active_records())), 200


@records_bp.route('/history/<string:container_id>', methods=['GET'])
def get_recent_history(container_id: str):
    """특정 그릇의 최근 기록 조회 (?limit=, 기본 10건)."""
    service = current_app.services['records']
    limit = request.args.get('limit', DEFAULT_HISTORY_LIMIT, type=int)
    return jsonify(_dump(service, service.recent_history(container_id, limit))), 200


@records_bp.route('/<string:record_id>', methods=['GET'])
def get_record(record_id: str):
    service = current_app.services['records']
    return jsonify(_dump(service, [service.get_record(record_id)])[0]), 200


@records_bp.route('/start', methods=['POST'])
def start_recording():
    """설치(새 기록 시작) API. 같은 그릇의 진행 중 기록은 강제 종료됩니다."""
    service = current_app.services['records']
    data = RecordStartSchema().load(request.get_json() or {})
    record = service.start_recording(
        data['container_id'], data['start_weight'], data['cat_count'],
        note=data.get('note'), date=data.get('date')
    )
    return jsonify(_dump(service, [record])[0]), 201


@records_bp.route('/finish', methods=['POST'])
def finish_recording():
    """회수 API. next_start_weight가 있으면 회수 후 바로 새 기록을 시작합니다."""
    service = current_app.services['records']
    data = RecordFinishSchema().load(request.get_json() or {})
    options = dict(
        weather_condition=data.get('weather_condition'),
        temperature=data.get('temperature'),
        cat_count=data.get('cat_count'),
        note=data.get('note'),
        date=data.get('date'),
    )

    if data.get('next_start_weight') is not None:
        finished, started = service.finish_and_restart(
            data['container_id'], data['end_weight'], data['next_start_weight'], **options
        )
        finished_dump, started_dump = _dump(service, [finished, started])
        return jsonify({"finished": finished_dump, "started": started_dump}), 200

    record = service.finish_recording(data['container_id'], data['end_weight'], **options)
    return jsonify({"finished": _dump(service, [record])[0], "started": None}), 200


@records_bp.route('/<string:record_id>/start', methods=['PATCH'])
def update_start_record(record_id: str):
    service = current_app.services['records']
    data = RecordStartUpdateSchema().load(request.get_json() or {})
    record = service.update_start_record(record_id, data['start_time'], data['start_weight'], data.get('note'))
    return jsonify(_dump(service, [record])[0]), 200


@records_bp.route('/<string:record_id>', methods=['PUT'])
def update_record(record_id: str):
    service = current_app.services['records']
    data = RecordUpdateSchema().load(request.get_json() or {})
    record = service.update_record(
        record_id, data['start_time'], data.get('end_time'),
        data['start_weight'], data.get('end_weight'), data.get('note')
    )
    return jsonify(_dump(service, [record])[0]), 200


@records_bp.route('/<string:record_id>', methods=['DELETE'])
def delete_record(record_id: str):
    service = current_app.services['records']
    service.delete_record(record_id)
    return jsonify({"deleted_id": record_id}), 200
