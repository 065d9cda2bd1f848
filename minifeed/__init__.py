# minifeed/__init__.py

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
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from flask_jwt_extended import JWTManager
import firebase_admin
from firebase_admin import credentials

# - 설정 및 예외
from minifeed.core.config import config_by_name
from minifeed.core.exceptions import FeedError

# - API 블루프린트
from minifeed.api.auth.routes import auth_bp
from minifeed.api.posts.routes import posts_bp
from minifeed.api.comments.routes import comments_bp

# - 서비스 모듈
from minifeed.api.auth.services import AuthService
from minifeed.api.posts.services import FeedStore
from minifeed.services.document_store import DocumentStore
from minifeed.services.identity_service import IdentityProvider, FirebaseIdentityProvider


def _init_firebase(app: Flask) -> None:
    """Firebase Admin SDK를 초기화합니다. 이미 초기화되어 있으면 건너뜁니다."""
    if firebase_admin._apps:
        return
    cred_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
    if cred_path:
        if not os.path.exists(cred_path):
            raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
        cred = credentials.Certificate(cred_path)
    else:
        # Cloud Run 등 서비스 계정이 연결된 환경
        cred = credentials.ApplicationDefault()
    options = {}
    if app.config.get('FIREBASE_PROJECT_ID'):
        options['projectId'] = app.config['FIREBASE_PROJECT_ID']
    firebase_admin.initialize_app(cred, options)


def create_app(config_name: Optional[str] = None,
               document_store: Optional[DocumentStore] = None,
               identity_provider: Optional[IdentityProvider] = None):
    """
    Flask 애플리케이션 팩토리 함수.
    저장소와 인증 제공자는 인자로 주입할 수 있으며, 생략하면 설정에 따라 생성합니다.
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
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    jwt_manager = JWTManager(app)

    backend = app.config['FEED_BACKEND']
    if identity_provider is None or (document_store is None and backend == 'firestore'):
        _init_firebase(app)

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    try:
        if document_store is None:
            if backend == 'firestore':
                from minifeed.services.firestore_store import FirestoreDocumentStore
                document_store = FirestoreDocumentStore()
            elif backend == 'memory':
                from minifeed.services.memory_store import InMemoryDocumentStore
                document_store = InMemoryDocumentStore()
            else:
                raise ValueError(f"지원하지 않는 FEED_BACKEND 값입니다: {backend}")
        app.services['documents'] = document_store
        logging.info(f"Document store initialized successfully ({type(document_store).__name__})")
    except Exception as e:
        logging.error(f"Failed to initialize document store: {e}")
        raise

    app.services['identity'] = identity_provider or FirebaseIdentityProvider()

    feed_store = FeedStore(document_store, collection=app.config['POSTS_COLLECTION'])
    app.services['feed'] = feed_store
    app.services['live_query'] = feed_store.live_query()
    app.services['auth'] = AuthService(document_store, collection=app.config['REVOKED_TOKENS_COLLECTION'])

    # - JWT 무효화 목록 및 인증 오류 응답
    @jwt_manager.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        return app.services['auth'].is_token_revoked(jwt_payload)

    @jwt_manager.unauthorized_loader
    def handle_missing_token(reason):
        return jsonify({"error_code": "UNAUTHENTICATED", "message": reason}), 401

    @jwt_manager.invalid_token_loader
    def handle_invalid_token(reason):
        return jsonify({"error_code": "INVALID_TOKEN", "message": reason}), 422

    @jwt_manager.expired_token_loader
    def handle_expired_token(jwt_header, jwt_payload):
        return jsonify({"error_code": "TOKEN_EXPIRED", "message": "토큰이 만료되었습니다."}), 401

    @jwt_manager.revoked_token_loader
    def handle_revoked_token(jwt_header, jwt_payload):
        return jsonify({"error_code": "TOKEN_REVOKED", "message": "로그아웃된 토큰입니다."}), 401

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(posts_bp, url_prefix='/api/posts')
    app.register_blueprint(comments_bp, url_prefix='/api')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(FeedError)
    def handle_feed_error(err):
        if err.status_code >= 500:
            logging.error(f"Feed operation failed: {err}", exc_info=err.cause or err)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리 (HTTP 예외는 그대로 반환)
        if isinstance(err, HTTPException):
            return err
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
