# minifeed/api/comments/schemas.py
from marshmallow import Schema, fields, validate

class CommentCreateSchema(Schema):
    """
    POST /api/posts/{post_id}/comments
    댓글 생성을 요청할 때의 데이터 형식을 정의하고 유효성을 검사합니다.
    """
    text = fields.Str(required=True, validate=validate.Length(min=1, max=1000, error="댓글은 1~1000자 사이여야 합니다."))
