# minifeed/api/posts/services.py
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from firebase_admin import firestore

from minifeed.api.posts.live_query import LiveQueryChannel
from minifeed.core.exceptions import BackingStoreError, InvalidArgumentError, UnauthenticatedError
from minifeed.models.post import Comment, DEFAULT_POST_USER_NAME
from minifeed.models.principal import Principal
from minifeed.services.document_store import DocumentStore
from minifeed.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)


class FeedStore:
    """
    게시글 변경 작업의 유일한 진입점.
    - 모든 작업은 비동기이며, 저장소 호출은 스레드로 넘겨 이벤트 루프를 막지 않습니다.
    - 공유 배열/카운터는 저장소의 원자적 필드 변환(ArrayUnion/ArrayRemove/Increment)으로만 수정합니다.
    - 변경 작업은 갱신된 피드를 반환하지 않습니다. 결과는 LiveQueryChannel의 다음 스냅샷으로 전달됩니다.
    """

    def __init__(self, document_store: DocumentStore, collection: str = 'posts'):
        self.documents = document_store
        self.collection = collection
        self._live_query = LiveQueryChannel(document_store, collection)

    def live_query(self) -> LiveQueryChannel:
        return self._live_query

    @staticmethod
    def _require_principal(principal: Optional[Principal]) -> Principal:
        if principal is None or not principal.user_id:
            raise UnauthenticatedError("로그인이 필요합니다.")
        return principal

    @staticmethod
    def _require_text(text: Optional[str], what: str) -> str:
        content = (text or '').strip()
        if not content:
            raise InvalidArgumentError(f"{what} 내용이 비어 있습니다.")
        return content

    async def publish_post(self, principal: Optional[Principal], text: str) -> str:
        """새 게시글을 생성하고 게시글 ID를 반환합니다. 생성 시각은 서버가 부여합니다."""
        principal = self._require_principal(principal)
        content = self._require_text(text, '게시글')

        data: Dict[str, Any] = {
            'userId': principal.user_id,
            'userName': principal.display_name or DEFAULT_POST_USER_NAME,
            'text': content,
            'timestamp': firestore.SERVER_TIMESTAMP,
            'likes': [],
            'comments': [],
            'shareCount': 0,
        }
        try:
            post_id = await asyncio.to_thread(self.documents.add, self.collection, data)
        except BackingStoreError as e:
            logger.error(f"게시글 생성 실패 (user_id: {principal.user_id}): {e}", exc_info=True)
            raise
        logger.info(f"게시글 생성 완료 (post_id: {post_id}, user_id: {principal.user_id})")
        return post_id

    async def toggle_like(self, principal: Optional[Principal], post_id: str) -> None:
        """
        좋아요를 누르거나 취소합니다.
        현재 좋아요 여부 확인과 변경은 하나의 트랜잭션 안에서 이루어집니다.
        """
        principal = self._require_principal(principal)
        user_id = principal.user_id

        def _decide(data: Dict[str, Any]) -> Dict[str, Any]:
            if user_id in (data.get('likes') or []):
                return {'likes': firestore.ArrayRemove([user_id])}
            return {'likes': firestore.ArrayUnion([user_id])}

        try:
            updates = await asyncio.to_thread(
                self.documents.update_in_transaction, self.collection, post_id, _decide
            )
        except BackingStoreError as e:
            logger.error(f"게시글 좋아요 토글 실패 (user_id: {user_id}, post_id: {post_id}): {e}", exc_info=True)
            raise
        action = '취소' if isinstance(updates.get('likes'), firestore.ArrayRemove) else '추가'
        logger.info(f"좋아요 {action} (user_id: {user_id}, post_id: {post_id})")

    async def add_comment(self, principal: Optional[Principal], post_id: str, text: str) -> None:
        """댓글을 게시글의 comments 배열 끝에 원자적으로 추가합니다."""
        principal = self._require_principal(principal)
        content = self._require_text(text, '댓글')

        # 배열 원소 안에는 SERVER_TIMESTAMP를 쓸 수 없으므로 작성 시각은 서버 프로세스의 UTC 시각을 사용합니다.
        comment = Comment(
            comment_id=str(uuid.uuid4()),
            user_id=principal.user_id,
            user_name=principal.display_name or DEFAULT_POST_USER_NAME,
            text=content,
            created_at=DateTimeUtils.now(),
        )
        try:
            await asyncio.to_thread(
                self.documents.update, self.collection, post_id,
                {'comments': firestore.ArrayUnion([comment.to_dict()])}
            )
        except BackingStoreError as e:
            logger.error(f"댓글 추가 실패 (user_id: {principal.user_id}, post_id: {post_id}): {e}", exc_info=True)
            raise
        logger.info(f"댓글 추가 완료 (comment_id: {comment.comment_id}, post_id: {post_id})")

    async def increment_share_count(self, post_id: str) -> None:
        """공유 횟수를 1 증가시킵니다."""
        try:
            await asyncio.to_thread(
                self.documents.update, self.collection, post_id,
                {'shareCount': firestore.Increment(1)}
            )
        except BackingStoreError as e:
            logger.error(f"공유 횟수 증가 실패 (post_id: {post_id}): {e}", exc_info=True)
            raise
        logger.info(f"공유 횟수 증가 (post_id: {post_id})")
