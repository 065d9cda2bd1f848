# minifeed/api/auth/services.py
import logging
from datetime import datetime, timezone
from typing import Optional

from flask import current_app
from flask_jwt_extended import get_jwt, get_jwt_identity

from minifeed.models.principal import Principal
from minifeed.services.document_store import DocumentStore
from minifeed.services.identity_service import IdentityContext
from minifeed.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)


class AuthService:
    """
    로그아웃된 JWT의 무효화 목록(blocklist)과 인증 제공자 로그아웃을 관리합니다.
    """
    def __init__(self, document_store: DocumentStore, collection: str = 'revoked_tokens'):
        self.documents = document_store
        self.collection = collection

    # --- Blocklist 관련 로직 ---
    def add_token_to_blocklist(self, jti: str, expires: datetime):
        """전달받은 토큰의 jti를 만료 시간과 함께 저장합니다."""
        token_data = {
            'revoked_at': DateTimeUtils.now(),
            'expires_at': expires
        }
        self.documents.set(self.collection, jti, token_data)

    def is_token_revoked(self, jwt_payload: dict) -> bool:
        """jti를 이용해 해당 토큰이 무효화 목록에 있는지 확인합니다."""
        jti = jwt_payload['jti']
        return self.documents.get(self.collection, jti) is not None

    def logout_user(self, identity: IdentityContext, access_jti: str, access_exp: int,
                    refresh_jti: Optional[str] = None, refresh_exp: Optional[int] = None):
        """Access/Refresh 토큰을 Blocklist에 추가하고 인증 제공자에서 로그아웃합니다."""
        user_id = identity.current_principal_id
        self.add_token_to_blocklist(access_jti, datetime.fromtimestamp(access_exp, tz=timezone.utc))
        if refresh_jti and refresh_exp:
            self.add_token_to_blocklist(refresh_jti, datetime.fromtimestamp(refresh_exp, tz=timezone.utc))
        identity.sign_out()
        logger.info(f"사용자 로그아웃 처리 완료 (user_id: {user_id}). JTI: {access_jti[:8]}...")


def identity_from_jwt() -> IdentityContext:
    """요청의 JWT로부터 현재 사용자의 IdentityContext를 만듭니다. (@jwt_required 안에서 호출)"""
    claims = get_jwt()
    principal = Principal(user_id=get_jwt_identity() or '', email=claims.get('email', ''))
    return IdentityContext(current_app.services['identity'], principal)
