# minifeed/api/comments/routes.py
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required

from minifeed.api.auth.services import identity_from_jwt
from minifeed.api.comments.schemas import CommentCreateSchema


comments_bp = Blueprint('comments_bp', __name__)

@comments_bp.route('/posts/<string:post_id>/comments', methods=['POST'])
@jwt_required()
async def create_comment(post_id: str):
    """
    특정 게시글에 새로운 댓글을 작성합니다.
    - 댓글은 게시글 문서의 comments 배열 끝에 원자적으로 추가됩니다.
    - 성공 시 201 Created를 반환하며, 댓글 내용은 실시간 스트림으로 전달됩니다.
    """
    feed_store = current_app.services['feed']
    data = CommentCreateSchema().load(request.get_json(silent=True) or {})
    await feed_store.add_comment(identity_from_jwt().current_principal, post_id, data['text'])
    return jsonify({"message": "댓글이 등록되었습니다."}), 201
