# minifeed/api/posts/routes.py
from flask import Blueprint, request, jsonify, current_app, Response, stream_with_context
from flask_jwt_extended import jwt_required, get_jwt_identity

from minifeed.api.auth.services import identity_from_jwt
from minifeed.api.posts.schemas import PostCreateSchema, PostCreatedSchema
from minifeed.api.posts.streaming import feed_events

posts_bp = Blueprint('posts_bp', __name__)

@posts_bp.route('', methods=['POST'])
@jwt_required()
async def create_post():
    """
    새로운 게시글을 작성합니다.
    - 성공 시, 생성된 게시글 ID를 201 Created 상태 코드와 함께 반환합니다.
    - 피드 반영은 실시간 스트림의 다음 스냅샷으로 전달됩니다.
    """
    feed_store = current_app.services['feed']
    data = PostCreateSchema().load(request.get_json(silent=True) or {})
    post_id = await feed_store.publish_post(identity_from_jwt().current_principal, data['text'])
    return jsonify(PostCreatedSchema().dump({"post_id": post_id})), 201


@posts_bp.route('/<string:post_id>/like', methods=['POST'])
@jwt_required()
async def toggle_like(post_id: str):
    """특정 게시글의 좋아요를 누르거나 취소합니다."""
    feed_store = current_app.services['feed']
    await feed_store.toggle_like(identity_from_jwt().current_principal, post_id)
    return jsonify({"message": "좋아요 상태가 변경되었습니다."}), 200


@posts_bp.route('/<string:post_id>/share', methods=['POST'])
@jwt_required()
async def share_post(post_id: str):
    """게시글 공유 횟수를 1 증가시킵니다."""
    feed_store = current_app.services['feed']
    await feed_store.increment_share_count(post_id)
    return jsonify({"message": "공유 횟수가 반영되었습니다."}), 200


@posts_bp.route('/stream', methods=['GET'])
@jwt_required()
def stream_posts():
    """
    전체 게시글 목록을 Server-Sent Events로 실시간 전달합니다.
    - 변경이 생길 때마다 최신순으로 정렬된 전체 목록을 'snapshot' 이벤트로 보냅니다.
    - 저장소 연결이 끊기면 'error' 이벤트를 보내고 스트림을 닫습니다. 재연결은 클라이언트가 결정합니다.
    """
    channel = current_app.services['live_query']
    keepalive = current_app.config.get('FEED_STREAM_KEEPALIVE_SECONDS', 15)
    events = feed_events(channel, get_jwt_identity(), keepalive)
    return Response(
        stream_with_context(events),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
    )
