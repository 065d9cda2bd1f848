# minifeed/api/auth/schemas.py
from marshmallow import Schema, fields

class LoginSchema(Schema):
    """로그인 요청의 유효성을 검사하는 스키마"""
    id_token = fields.Str(
        required=True,
        metadata={"description": "클라이언트가 Firebase Authentication으로 로그인한 뒤 받은 ID 토큰"}
    )

class LoginResponseSchema(Schema):
    access_token = fields.Str(required=True)
    refresh_token = fields.Str(required=True)
    user_id = fields.Str(required=True)
    user_name = fields.Str(required=True)

class LogoutRequestSchema(Schema):
    """로그아웃 요청 본문. Access 토큰은 Authorization 헤더로 전달합니다."""
    refresh_token = fields.Str(load_default=None)
