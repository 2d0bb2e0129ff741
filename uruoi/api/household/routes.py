# uruoi/api/household/routes.py
from flask import Blueprint, request, jsonify, current_app

from .schemas import HouseholdJoinSchema, HouseholdStatusSchema, RestorePreviewSchema

household_bp = Blueprint('household_bp', __name__)


def _status_response(service, status_code: int = 200):
    return jsonify(HouseholdStatusSchema().dump(service.status())), status_code


@household_bp.route('/', methods=['GET'])
def get_status():
    """현재 동기화 상태, 공유 ID, 기기 ID 조회."""
    return _status_response(current_app.services['household'])


@household_bp.route('/', methods=['POST'])
def create_household():
    """새 가족 공유 공간을 만들고 로컬 데이터를 업로드합니다."""
    service = current_app.services['household']
    service.create_household()
    return _status_response(service, 201)


@household_bp.route('/join', methods=['POST'])
def join_household():
    """공유 ID로 참여합니다. 이 기기의 로컬 데이터는 삭제됩니다."""
    service = current_app.services['household']
    data = HouseholdJoinSchema().load(request.get_json() or {})
    service.join_household(data['household_id'])
    return _status_response(service)


@household_bp.route('/restore', methods=['GET'])
def restore_preview():
    service = current_app.services['household']
    return jsonify(RestorePreviewSchema().dump(service.restore_preview())), 200


@household_bp.route('/restore', methods=['POST'])
def restore_household():
    """이 기기에서 만들었던 공유 공간의 데이터로 복원합니다."""
    service = current_app.services['household']
    service.restore_household()
    return _status_response(service)


@household_bp.route('/leave', methods=['POST'])
def leave_household():
    service = current_app.services['household']
    service.leave_household()
    return _status_response(service)


@household_bp.route('/refresh', methods=['POST'])
def refresh():
    service = current_app.services['household']
    service.refresh()
    return _status_response(service)
