# minifeed/models/principal.py
from dataclasses import dataclass


def display_name_from_email(email: str) -> str:
    """이메일 핸들에서 '@' 앞부분을 표시 이름으로 사용합니다. (alice@x.com -> alice)"""
    if not email:
        return ''
    return email.split('@', 1)[0]


@dataclass(frozen=True)
class Principal:
    """
    외부 인증 제공자(Firebase Auth)가 확인해 준 사용자.
    """
    user_id: str
    email: str = ''

    @property
    def display_name(self) -> str:
        return display_name_from_email(self.email)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)
