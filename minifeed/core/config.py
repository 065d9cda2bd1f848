# minifeed/core/config.py

import os # 'os' 모듈: 환경 변수를 읽기 위해 사용합니다.

class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # 이 키는 JWT 토큰을 서명하는 데 사용되어 토큰의 위변조를 방지합니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    # Firebase 프로젝트 ID. 서비스 계정 키에 포함되어 있으면 비워둘 수 있습니다.
    FIREBASE_PROJECT_ID = os.getenv('FIREBASE_PROJECT_ID')

    # 저장소 백엔드: 'firestore'(운영) 또는 'memory'(로컬 실행/테스트)
    FEED_BACKEND = os.getenv('FEED_BACKEND', 'firestore')
    # 게시글 문서가 저장되는 컬렉션 이름
    POSTS_COLLECTION = os.getenv('POSTS_COLLECTION', 'posts')
    # 로그아웃된 JWT의 jti를 저장하는 컬렉션 이름
    REVOKED_TOKENS_COLLECTION = os.getenv('REVOKED_TOKENS_COLLECTION', 'revoked_tokens')
    # 실시간 피드(SSE)에서 변경이 없을 때 keep-alive 주석을 보내는 간격(초)
    FEED_STREAM_KEEPALIVE_SECONDS = int(os.getenv('FEED_STREAM_KEEPALIVE_SECONDS', 15))

class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    # 개발용 Firebase 프로젝트에 연결하기 위한 서비스 계정 키 파일 경로
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH')

class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다."""
    TESTING = True
    DEBUG = False
    # 테스트는 Firebase 없이 인메모리 저장소로 실행합니다.
    FEED_BACKEND = 'memory'
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'testing-secret-key')
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    FEED_STREAM_KEEPALIVE_SECONDS = 1

class ProductionConfig(Config):
    """운영 환경을 위한 설정 클래스입니다."""
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')

# config_by_name: FLASK_ENV 값과 해당 환경의 설정 클래스를 매핑하는 딕셔너리입니다.
# minifeed/__init__.py의 create_app 함수에서 사용됩니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
