# uruoi/api/analytics/routes.py
from flask import Blueprint, request, jsonify, current_app

from uruoi.api.records.schemas import RecordResponseSchema
from .schemas import PeriodQuerySchema, TimelineQuerySchema, PeriodSummarySchema, TimelineEventSchema

analytics_bp = Blueprint('analytics_bp', __name__)


@analytics_bp.route('/summary', methods=['GET'])
def get_summary():
    """헤더 요약: 최근 7일 고양이 한 마리당 하루 평균, 오늘 합계, 건강 알림."""
    service = current_app.services['analytics']
    alert_record = service.health_alert()
    return jsonify({
        "weekly_average_per_cat": service.weekly_average_per_cat(),
        "today_total_per_cat": service.today_total_per_cat(),
        "alert_record": RecordResponseSchema().dump(alert_record) if alert_record else None,
    }), 200


@analytics_bp.route('/period', methods=['GET'])
def get_period_summary():
    """
    기간별 음수량 분석.

    쿼리 파라미터:
    - period: week | month | year (기본값: week)
    - reference: 기준 시각 (ISO 8601, 기본값: 현재)
    """
    service = current_app.services['analytics']
    query = PeriodQuerySchema().load(request.args)
    summary = service.period_summary(query['period'], query.get('reference'))
    return jsonify(PeriodSummarySchema().dump(summary)), 200


@analytics_bp.route('/containers/<string:container_id>/alert', methods=['GET'])
def get_container_alert(container_id: str):
    service = current_app.services['analytics']
    record = service.container_alert(container_id)
    return jsonify({
        "is_alert": record is not None,
        "record": RecordResponseSchema().dump(record) if record else None,
    }), 200


@analytics_bp.route('/timeline', methods=['GET'])
def get_timeline():
    """설치/회수 이벤트 타임라인 (최신순)."""
    service = current_app.services['analytics']
    query = TimelineQuerySchema().load(request.args)
    return jsonify(TimelineEventSchema(many=True).dump(service.recent_timeline(query['limit']))), 200
