# minifeed/api/posts/live_query.py
"""
게시글 전체 목록을 실시간으로 전달하는 구독 채널.

- 스냅샷은 created_at 내림차순(동률은 문서 ID 순)으로 정렬된 전체 게시글 목록입니다.
- 한 구독자에게 이미 전달한 스냅샷보다 오래된 스냅샷은 전달하지 않습니다.
- 연결 오류가 나면 재시도하지 않고 구독을 오류로 종료합니다. 재구독은 구독자의 몫입니다.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from minifeed.core.exceptions import BackingStoreError
from minifeed.models.post import FeedSnapshot, Post
from minifeed.services.document_store import DocumentStore, Watch

logger = logging.getLogger(__name__)

SnapshotObserver = Callable[[FeedSnapshot], None]
ErrorObserver = Callable[[Exception], None]

ORDER_FIELD = 'timestamp'


class Subscription:
    """
    구독 취소 핸들. cancel()을 호출하거나 with 블록을 벗어나면 더 이상 스냅샷을 받지 않습니다.
    콜백은 저장소의 스냅샷 스레드에서 호출됩니다.
    """

    def __init__(self, on_snapshot: SnapshotObserver, on_error: Optional[ErrorObserver] = None):
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._watch: Optional[Watch] = None
        self._lock = threading.RLock()
        self._closed = False
        self._last_read_time: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return not self._closed

    def _attach(self, watch: Watch) -> None:
        with self._lock:
            self._watch = watch
            closed = self._closed
        if closed:
            watch.unsubscribe()

    def _deliver(self, documents: List[Tuple[str, Dict[str, Any]]], read_time: datetime) -> None:
        with self._lock:
            if self._closed:
                return
            if self._last_read_time is not None and read_time < self._last_read_time:
                logger.debug(f"오래된 스냅샷 무시 (read_time: {read_time}, last: {self._last_read_time})")
                return
            self._last_read_time = read_time
            try:
                snapshot = FeedSnapshot(
                    posts=[Post.from_document(doc_id, data) for doc_id, data in documents],
                    read_time=read_time,
                )
                self._on_snapshot(snapshot)
            except Exception as e:
                logger.error(f"스냅샷 구독자 처리 중 오류 발생: {e}", exc_info=True)
                self._terminate(e)

    def _terminate(self, error: Exception) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            watch = self._watch
        if watch is not None:
            watch.unsubscribe()

        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as e:
                logger.error(f"구독 오류 콜백 처리 중 오류 발생: {e}", exc_info=True)
        else:
            logger.warning(f"실시간 피드 구독이 오류로 종료되었습니다: {error}", exc_info=error)

    def _fail(self, error: Exception) -> None:
        if not isinstance(error, BackingStoreError):
            error = BackingStoreError("실시간 구독 중 오류가 발생했습니다.", cause=error)
        self._terminate(error)

    def cancel(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            watch = self._watch
        if watch is not None:
            watch.unsubscribe()

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class LiveQueryChannel:

    def __init__(self, document_store: DocumentStore, collection: str = 'posts'):
        self.documents = document_store
        self.collection = collection

    def subscribe(self, on_snapshot: SnapshotObserver, on_error: Optional[ErrorObserver] = None) -> Subscription:
        """
        구독자를 등록하고 취소 핸들을 반환합니다.
        등록 직후 현재 전체 목록이 한 번 전달되고, 이후 커밋마다 다시 전달됩니다.
        """
        subscription = Subscription(on_snapshot, on_error)
        watch = self.documents.watch(
            self.collection, ORDER_FIELD, subscription._deliver, subscription._fail, descending=True
        )
        subscription._attach(watch)
        return subscription

    async def snapshots(self) -> AsyncIterator[FeedSnapshot]:
        """
        스냅샷을 차례로 내보내는 비동기 이터레이터.
        반복을 시작할 때 구독하고, 반복을 멈추면 구독을 취소합니다.
        연결 오류는 BackingStoreError로 발생합니다.

        스냅샷은 매번 전체 목록이므로 소비가 늦으면 아직 꺼내지 않은 스냅샷을
        가장 최근 것으로 교체합니다. 대기 중인 항목은 항상 하나 이하입니다.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)

        def _put_latest(item) -> None:
            if queue.full():
                pending = queue.get_nowait()
                if isinstance(pending, Exception):
                    # 종료 오류는 교체하지 않음
                    queue.put_nowait(pending)
                    return
            queue.put_nowait(item)

        def _on_snapshot(snapshot: FeedSnapshot) -> None:
            loop.call_soon_threadsafe(_put_latest, snapshot)

        def _on_error(error: Exception) -> None:
            loop.call_soon_threadsafe(_put_latest, error)

        subscription = self.subscribe(_on_snapshot, _on_error)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            subscription.cancel()
