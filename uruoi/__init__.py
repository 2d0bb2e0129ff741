# uruoi/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from typing import Optional
from flask import Flask, jsonify
from marshmallow import ValidationError
import firebase_admin
from firebase_admin import credentials

# - 설정 및 예외
from uruoi.core.config import config_by_name
from uruoi.core.exceptions import (
    EntityValidationError, LocalDeleteFailedError, LocalPersistenceError, NotFoundError, SyncFailedError,
)

# - API 블루프린트
from uruoi.api.containers.routes import containers_bp
from uruoi.api.records.routes import records_bp
from uruoi.api.household.routes import household_bp
from uruoi.api.analytics.routes import analytics_bp

# - 서비스 모듈
from uruoi.store import LocalStore, StoreDispatcher
from uruoi.services.firestore_service import FirestoreRemoteStore, RemoteStore
from uruoi.services.device_service import DeviceIdentityProvider, DeviceSettingsStore
from uruoi.services.sync_service import SyncService
from uruoi.services.migration_service import MigrationService
from uruoi.api.containers.services import ContainerService
from uruoi.api.records.services import RecordService
from uruoi.api.household.services import HouseholdService
from uruoi.api.analytics.services import AnalyticsService


def _init_firebase(app: Flask) -> None:
    if firebase_admin._apps:
        return
    cred_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
    if not cred_path or not os.path.exists(cred_path):
        raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
    firebase_admin.initialize_app(credentials.Certificate(cred_path))


def create_app(config_name: Optional[str] = None,
               remote_store: Optional[RemoteStore] = None,
               settings_path: Optional[str] = None):
    """
    Flask 애플리케이션 팩토리 함수.

    Args:
        config_name: 'development' | 'testing' (기본값: FLASK_ENV)
        remote_store: 원격 저장소 구현. 없으면 Firebase를 초기화하고 Firestore를 사용합니다.
        settings_path: 기기 설정 파일 경로 (기본값: DEVICE_SETTINGS_PATH 설정)
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    # =====================================================================================
    # 4. 외부 서비스 초기화
    # =====================================================================================
    if remote_store is None:
        _init_firebase(app)
        remote_store = FirestoreRemoteStore()

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    # 5-1. 저장소와 기기 설정: 로컬 저장소는 소유 스레드에서 만들고 그 스레드에서만 사용
    dispatcher = StoreDispatcher()
    local_store = dispatcher.run(LocalStore, app.config['LOCAL_DATABASE_URL'])
    settings = DeviceSettingsStore(settings_path or app.config['DEVICE_SETTINGS_PATH'])
    device_identity = DeviceIdentityProvider(settings)

    app.services['dispatcher'] = dispatcher
    app.services['local_store'] = local_store
    app.services['remote_store'] = remote_store
    app.services['settings'] = settings
    app.services['device_identity'] = device_identity

    # 5-2. 동기화/이전 서비스
    app.services['sync'] = SyncService(remote_store, local_store, dispatcher)
    app.services['migration'] = MigrationService(
        remote_store, local_store, dispatcher, batch_limit=app.config['REMOTE_BATCH_LIMIT']
    )

    # 5-3. 도메인 서비스
    app.services['containers'] = ContainerService(local_store, dispatcher, app.services['sync'])
    app.services['records'] = RecordService(local_store, dispatcher, app.services['sync'], device_identity)
    app.services['household'] = HouseholdService(
        app.services['sync'], app.services['migration'], settings, device_identity
    )
    app.services['analytics'] = AnalyticsService(
        local_store, dispatcher, default_cat_count=app.config['DEFAULT_CAT_COUNT']
    )

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(containers_bp, url_prefix='/api/containers')
    app.register_blueprint(records_bp, url_prefix='/api/records')
    app.register_blueprint(household_bp, url_prefix='/api/household')
    app.register_blueprint(analytics_bp, url_prefix='/api/analytics')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(EntityValidationError)
    def handle_entity_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.errors}
        return jsonify(response), 400

    @app.errorhandler(ValueError)
    def handle_value_error(err):
        return jsonify({"error_code": "INVALID_REQUEST", "message": str(err)}), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(err):
        return jsonify({"error_code": "NOT_FOUND", "message": str(err)}), 404

    @app.errorhandler(SyncFailedError)
    def handle_sync_failed(err):
        logging.error(f"Sync failed: {err} (cause: {err.cause})")
        return jsonify({"error_code": "SYNC_FAILED", "message": str(err)}), 502

    @app.errorhandler(LocalDeleteFailedError)
    def handle_local_delete_failed(err):
        return jsonify({"error_code": "LOCAL_DELETE_FAILED", "message": str(err)}), 500

    @app.errorhandler(LocalPersistenceError)
    def handle_local_persistence(err):
        return jsonify({"error_code": "LOCAL_SAVE_FAILED", "message": str(err)}), 500

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 동기화 재개 및 앱 반환
    # =====================================================================================
    if app.config.get('SYNC_ON_STARTUP') and app.services['household'].resume():
        logging.info(f"저장된 가족 공유로 동기화를 재개합니다 (Household: {app.services['household'].household_id})")

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app


def shutdown_app(app: Flask) -> None:
    """동기화를 멈추고 스레드와 로컬 저장소를 정리합니다."""
    services = app.services
    services['sync'].shutdown()
    services['dispatcher'].run(services['local_store'].close)
    services['dispatcher'].shutdown()
    logging.info("App services shut down.")
