# minifeed/api/posts/schemas.py
from marshmallow import Schema, fields, validate

# --- 재사용을 위한 중첩 스키마 ---
class CommentSchema(Schema):
    """게시물 응답에 포함될 댓글 정보 스키마."""
    comment_id = fields.Str(required=True)
    user_id = fields.Str(required=True)
    user_name = fields.Str(required=True)
    text = fields.Str(required=True)
    created_at = fields.DateTime(required=True)

# --- API 요청/응답 스키마 ---

class PostCreateSchema(Schema):
    """POST /api/posts 요청 본문의 유효성을 검사합니다."""
    text = fields.Str(required=True, validate=validate.Length(min=1, max=2000))

class PostCreatedSchema(Schema):
    post_id = fields.Str(required=True)

class PostResponseSchema(Schema):
    """게시글 정보 응답을 위한 최종 JSON 형식을 정의합니다."""
    post_id = fields.Str(dump_only=True)
    user_id = fields.Str(required=True)
    user_name = fields.Str(required=True)
    text = fields.Str(required=True)
    created_at = fields.DateTime(required=True)
    liked_by = fields.List(fields.Str(), required=True)
    like_count = fields.Int(required=True)
    comments = fields.List(fields.Nested(CommentSchema), required=True)
    comment_count = fields.Int(required=True)
    share_count = fields.Int(required=True)
    is_liked = fields.Bool(dump_only=True, dump_default=False)

class FeedSnapshotSchema(Schema):
    """실시간 피드 스트림의 snapshot 이벤트 형식."""
    posts = fields.List(fields.Nested(PostResponseSchema), required=True)
    read_time = fields.DateTime(required=True)
