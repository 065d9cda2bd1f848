# minifeed/services/identity_service.py
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from minifeed.core.exceptions import BackingStoreError, UnauthenticatedError
from minifeed.models.principal import Principal, display_name_from_email

logger = logging.getLogger(__name__)

AuthStateListener = Callable[[Optional[Principal]], None]


class IdentityProvider(ABC):
    """자격 증명 검증과 세션 관리를 담당하는 외부 인증 제공자."""

    @abstractmethod
    def verify_id_token(self, id_token: str) -> Principal:
        """ID 토큰을 검증하고 Principal을 반환합니다. 유효하지 않으면 UnauthenticatedError."""

    @abstractmethod
    def sign_out(self, user_id: str) -> None:
        ...


class FirebaseIdentityProvider(IdentityProvider):
    """
    Firebase Authentication을 사용하는 인증 제공자.
    클라이언트가 Firebase SDK로 로그인한 뒤 받은 ID 토큰을 서버에서 검증합니다.
    """

    def __init__(self, check_revoked: bool = True):
        self.check_revoked = check_revoked

    def verify_id_token(self, id_token: str) -> Principal:
        if not id_token:
            raise UnauthenticatedError("ID 토큰이 없습니다.")
        try:
            decoded = firebase_auth.verify_id_token(id_token, check_revoked=self.check_revoked)
        except (firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
                firebase_auth.RevokedIdTokenError, firebase_auth.UserDisabledError, ValueError) as e:
            logger.warning(f"유효하지 않은 ID 토큰: {e}")
            raise UnauthenticatedError("유효하지 않은 ID 토큰입니다.", cause=e) from e
        except (firebase_exceptions.FirebaseError, firebase_auth.CertificateFetchError) as e:
            logger.error(f"ID 토큰 검증 중 Firebase 오류 발생: {e}", exc_info=True)
            raise BackingStoreError("인증 제공자와 통신 중 오류가 발생했습니다.", cause=e) from e

        return Principal(user_id=decoded.get('uid', ''), email=decoded.get('email') or '')

    def sign_out(self, user_id: str) -> None:
        """사용자의 모든 Firebase refresh 토큰을 무효화합니다."""
        try:
            firebase_auth.revoke_refresh_tokens(user_id)
            logger.info(f"Firebase refresh 토큰 무효화 완료 (user_id: {user_id})")
        except firebase_auth.UserNotFoundError:
            logger.warning(f"Firebase Auth에 없는 사용자입니다 (user_id: {user_id}).")
        except firebase_exceptions.FirebaseError as e:
            logger.error(f"로그아웃 처리 중 Firebase 오류 발생 (user_id: {user_id}): {e}", exc_info=True)
            raise BackingStoreError("로그아웃 처리 중 오류가 발생했습니다.", cause=e) from e


class IdentityContext:
    """
    현재 인증된 사용자(principal)를 피드 서비스에 노출합니다.
    - 로그인하지 않은 상태에서는 ID/이메일/표시 이름이 모두 빈 문자열입니다.
    - 세션 유지는 인증 제공자에게 맡기고, 여기서는 현재 상태와 상태 변경 알림만 관리합니다.
    """

    def __init__(self, provider: IdentityProvider, principal: Optional[Principal] = None):
        self.provider = provider
        self._principal = principal
        self._listeners: List[AuthStateListener] = []
        self._lock = threading.Lock()

    @property
    def current_principal(self) -> Optional[Principal]:
        if self._principal is None or not self._principal.user_id:
            return None
        return self._principal

    @property
    def current_principal_id(self) -> str:
        return self._principal.user_id if self._principal else ''

    @property
    def current_email(self) -> str:
        return self._principal.email if self._principal else ''

    @property
    def current_display_name(self) -> str:
        return display_name_from_email(self.current_email)

    def sign_in(self, id_token: str) -> Principal:
        principal = self.provider.verify_id_token(id_token)
        self._set_principal(principal)
        return principal

    def sign_out(self) -> None:
        principal = self.current_principal
        if principal is not None:
            self.provider.sign_out(principal.user_id)
        self._set_principal(None)

    def add_auth_state_listener(self, listener: AuthStateListener) -> Callable[[], None]:
        """인증 상태가 바뀔 때마다 호출될 리스너를 등록하고, 등록 해제 함수를 반환합니다."""
        with self._lock:
            self._listeners.append(listener)

        def _remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return _remove

    def _set_principal(self, principal: Optional[Principal]) -> None:
        with self._lock:
            changed = principal != self._principal
            self._principal = principal
            listeners = list(self._listeners)
        if changed:
            for listener in listeners:
                listener(self.current_principal)
