# uruoi/api/containers/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app

from .schemas import (
    ContainerCreateSchema,
    ContainerUpdateSchema,
    ContainerReorderSchema,
    ContainerResponseSchema
)

containers_bp = Blueprint('containers_bp', __name__)


def _flag(name: str) -> bool:
    return request.args.get(name, 'false').lower() in ('true', '1', 'yes')


@containers_bp.route('/', methods=['GET'])
def list_containers():
    """그릇 목록 조회. ?include_archived=true 이면 보관된 그릇도 포함합니다."""
    service = current_app.services['containers']
    containers = service.list_containers(include_archived=_flag('include_archived'))
    return jsonify(ContainerResponseSchema(many=True).dump(containers)), 200


@containers_bp.route('/', methods=['POST'])
def add_container():
    service = current_app.services['containers']
    data = ContainerCreateSchema().load(request.get_json() or {})
    container = service.add_container(data['name'], data['empty_weight'])
    return jsonify(ContainerResponseSchema().dump(container)), 201


@containers_bp.route('/<string:container_id>', methods=['GET'])
def get_container(container_id: str):
    service = current_app.services['containers']
    return jsonify(ContainerResponseSchema().dump(service.get_container(container_id))), 200


@containers_bp.route('/<string:container_id>', methods=['PATCH'])
def update_container(container_id: str):
    """그릇 정보 부분 수정."""
    service = current_app.services['containers']
    data = ContainerUpdateSchema().load(request.get_json() or {})
    container = service.update_container(container_id, data.get('name'), data.get('empty_weight'))
    return jsonify(ContainerResponseSchema().dump(container)), 200


@containers_bp.route('/<string:container_id>/archive', methods=['POST'])
def archive_container(container_id: str):
    service = current_app.services['containers']
    container = service.archive_container(container_id)
    return jsonify(ContainerResponseSchema().dump(container)), 200


@containers_bp.route('/<string:container_id>', methods=['DELETE'])
def delete_container(container_id: str):
    """그릇과 연결된 모든 기록을 완전히 삭제합니다."""
    service = current_app.services['containers']
    deleted_record_ids = service.hard_delete_container(container_id)
    logging.info(f"Delete container API: {container_id}")
    return jsonify({"deleted_id": container_id, "deleted_record_ids": deleted_record_ids}), 200


@containers_bp.route('/order', methods=['PUT'])
def reorder_containers():
    service = current_app.services['containers']
    data = ContainerReorderSchema().load(request.get_json() or {})
    containers = service.reorder_containers(data['ids'])
    return jsonify(ContainerResponseSchema(many=True).dump(containers)), 200
