# minifeed/api/posts/streaming.py
"""실시간 피드를 Server-Sent Events 형식으로 내보내는 헬퍼."""

import json
import logging
import queue
from typing import Any, Dict, Iterator

from minifeed.api.posts.live_query import LiveQueryChannel
from minifeed.api.posts.schemas import FeedSnapshotSchema
from minifeed.core.exceptions import FeedError
from minifeed.models.post import FeedSnapshot

logger = logging.getLogger(__name__)

KEEPALIVE_COMMENT = ": keep-alive\n\n"


def format_event(event: str, payload: Dict[str, Any]) -> str:
    data = json.dumps(payload, ensure_ascii=False)
    return f"event: {event}\ndata: {data}\n\n"


def snapshot_payload(snapshot: FeedSnapshot, user_id: str) -> Dict[str, Any]:
    """스냅샷을 응답 형식으로 직렬화하고, 요청한 사용자의 좋아요 여부(is_liked)를 채웁니다."""
    posts = []
    for post in snapshot.posts:
        post_data = post.to_dict()
        post_data['is_liked'] = post.is_liked_by(user_id)
        posts.append(post_data)
    return FeedSnapshotSchema().dump({'posts': posts, 'read_time': snapshot.read_time})


def _offer_latest(events: queue.Queue, item: Any) -> None:
    """대기 중인 스냅샷을 최신 스냅샷으로 교체합니다. 종료 오류는 버리지 않습니다."""
    while True:
        try:
            events.put_nowait(item)
            return
        except queue.Full:
            try:
                pending = events.get_nowait()
            except queue.Empty:
                continue
            if isinstance(pending, Exception):
                events.put_nowait(pending)
                return


def feed_events(channel: LiveQueryChannel, user_id: str, keepalive_seconds: float = 15) -> Iterator[str]:
    """
    스냅샷마다 'snapshot' 이벤트를 내보냅니다.
    - 변경이 없으면 keepalive_seconds마다 keep-alive 주석을 보냅니다.
    - 구독이 오류로 끝나면 'error' 이벤트를 하나 보내고 스트림을 닫습니다.
    - 클라이언트가 연결을 끊으면 제너레이터가 닫히면서 구독이 취소됩니다.
    - 클라이언트가 느리면 중간 스냅샷은 건너뛰고 최신 스냅샷만 보냅니다.
    """
    events: queue.Queue = queue.Queue(maxsize=1)

    def _offer(item):
        _offer_latest(events, item)

    subscription = channel.subscribe(_offer, _offer)
    try:
        while True:
            try:
                item = events.get(timeout=keepalive_seconds)
            except queue.Empty:
                yield KEEPALIVE_COMMENT
                continue

            if isinstance(item, Exception):
                if isinstance(item, FeedError):
                    payload = item.to_dict()
                else:
                    payload = {"error_code": "INTERNAL_SERVER_ERROR", "message": "실시간 피드 처리 중 오류가 발생했습니다."}
                logger.warning(f"실시간 피드 스트림 종료 (user_id: {user_id}): {item}")
                yield format_event('error', payload)
                return

            yield format_event('snapshot', snapshot_payload(item, user_id))
    finally:
        subscription.cancel()
