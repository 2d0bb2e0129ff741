# uruoi/core/config.py

import os # 'os' 모듈: 환경 변수를 읽기 위해 사용합니다.

class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # 로컬 임베디드 저장소(SQLite)의 SQLAlchemy 접속 URL. 기기 한 대가 하나의 파일을 소유합니다.
    LOCAL_DATABASE_URL = os.getenv('LOCAL_DATABASE_URL', 'sqlite:///uruoi.db')
    # 기기 ID, 현재 가족 공유 ID(householdId), 직접 만든 공유 ID를 보관하는 JSON 파일 경로입니다.
    DEVICE_SETTINGS_PATH = os.getenv('DEVICE_SETTINGS_PATH', 'device_settings.json')
    # 분석 화면에서 사용하는 기본 고양이 수 (앱 설정의 defaultCatCount)
    DEFAULT_CAT_COUNT = int(os.getenv('DEFAULT_CAT_COUNT', 2))
    # Firestore 배치 쓰기 한 번에 담을 수 있는 최대 문서 수
    REMOTE_BATCH_LIMIT = int(os.getenv('REMOTE_BATCH_LIMIT', 500))
    # 앱 생성 시 저장된 householdId가 있으면 곧바로 동기화를 시작할지 여부
    SYNC_ON_STARTUP = os.getenv('SYNC_ON_STARTUP', 'true').lower() in ('true', '1', 'yes')

class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    # 개발용 Firebase 프로젝트에 연결하기 위한 서비스 계정 키 파일 경로
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH')

class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다."""
    TESTING = True
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    # 테스트는 프로세스 메모리 안의 SQLite만 사용합니다.
    LOCAL_DATABASE_URL = 'sqlite://'
    SYNC_ON_STARTUP = False

# config_by_name: FLASK_ENV 값과 설정 클래스를 매핑합니다. create_app에서 사용합니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig
)
