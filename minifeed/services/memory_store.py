# minifeed/services/memory_store.py
"""
프로세스 내부에서 동작하는 DocumentStore 구현체.

Firestore와 같은 필드 변환(ArrayUnion/ArrayRemove/Increment/SERVER_TIMESTAMP)을
커밋 잠금 안에서 적용하므로 동시 호출에서도 갱신이 유실되지 않습니다.
로컬 실행(FEED_BACKEND=memory)과 테스트에서 사용합니다.
"""

import copy
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from firebase_admin import firestore

from minifeed.core.exceptions import BackingStoreError, NotFoundError
from minifeed.services.document_store import (
    DocumentStore, ErrorCallback, SnapshotCallback, UpdateDecider, Watch
)
from minifeed.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)


def _order_key(value: Any) -> Tuple[int, Any]:
    """Firestore의 타입 간 정렬 순서(bool < 숫자 < 타임스탬프 < 문자열 < 기타)를 따르는 정렬 키."""
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value if value.tzinfo else value.replace(tzinfo=timezone.utc))
    if isinstance(value, str):
        return (4, value)
    return (5, repr(value))


class _MemoryWatch(Watch):

    def __init__(self, store: 'InMemoryDocumentStore', collection: str, order_by: str,
                 descending: bool, on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self.store = store
        self.collection = collection
        self.order_by = order_by
        self.descending = descending
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.last_version = -1
        self.active = True

    def deliver(self, version: int, documents: List[Tuple[str, Dict[str, Any]]], read_time: datetime) -> None:
        # 이미 더 최신 스냅샷을 전달했다면 건너뜁니다.
        if not self.active or version <= self.last_version:
            return
        self.last_version = version
        try:
            self.on_snapshot(documents, read_time)
        except Exception as e:
            # 커밋은 이미 반영되었으므로 쓰기 호출자와 다른 구독자에게 오류를 넘기지 않습니다.
            logger.error(f"인메모리 구독 콜백 처리 중 오류 발생 (Collection: {self.collection}): {e}", exc_info=True)

    def unsubscribe(self) -> None:
        self.store._remove_watch(self)


class InMemoryDocumentStore(DocumentStore):

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        # 스냅샷 전달 순서를 직렬화합니다. 구독자가 콜백 안에서 다시 쓰기를 할 수 있도록 RLock을 사용합니다.
        self._delivery_lock = threading.RLock()
        self._watches: List[_MemoryWatch] = []
        self._version = 0
        self._last_commit_time: Optional[datetime] = None

    # --- 내부 유틸리티 ---

    def _next_commit_time(self) -> datetime:
        """커밋마다 엄격히 증가하는 서버 시각을 부여합니다. (_lock 안에서 호출)"""
        commit_time = DateTimeUtils.now()
        if self._last_commit_time is not None and commit_time <= self._last_commit_time:
            commit_time = self._last_commit_time + timedelta(microseconds=1)
        self._last_commit_time = commit_time
        return commit_time

    @staticmethod
    def _resolve(value: Any, commit_time: datetime) -> Any:
        if value is firestore.SERVER_TIMESTAMP:
            return commit_time
        if isinstance(value, dict):
            return {k: InMemoryDocumentStore._resolve(v, commit_time) for k, v in value.items()}
        if isinstance(value, list):
            return [InMemoryDocumentStore._resolve(v, commit_time) for v in value]
        return copy.deepcopy(value)

    @staticmethod
    def _apply_field(current: Any, value: Any, commit_time: datetime) -> Any:
        """Firestore 필드 변환 규칙을 그대로 따릅니다."""
        if isinstance(value, firestore.ArrayUnion):
            result = list(current) if isinstance(current, list) else []
            for item in value.values:
                item = InMemoryDocumentStore._resolve(item, commit_time)
                if item not in result:
                    result.append(item)
            return result
        if isinstance(value, firestore.ArrayRemove):
            result = list(current) if isinstance(current, list) else []
            removed = [InMemoryDocumentStore._resolve(item, commit_time) for item in value.values]
            return [item for item in result if item not in removed]
        if isinstance(value, firestore.Increment):
            if isinstance(current, (int, float)) and not isinstance(current, bool):
                return current + value.value
            return value.value
        return InMemoryDocumentStore._resolve(value, commit_time)

    def _query(self, collection: str, order_by: str, descending: bool) -> List[Tuple[str, Dict[str, Any]]]:
        """정렬 필드가 있는 문서만 포함하며, 동률은 문서 ID로 정렬합니다. (_lock 안에서 호출)"""
        docs = self._collections.get(collection, {})
        rows = [(doc_id, data) for doc_id, data in docs.items() if data.get(order_by) is not None]
        rows.sort(key=lambda row: (_order_key(row[1][order_by]), row[0]), reverse=descending)
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in rows]

    def _commit(self, collection: str, mutate) -> Any:
        """
        mutate(docs, commit_time)를 커밋 잠금 안에서 실행하고,
        잠금을 푼 뒤 해당 컬렉션 구독자에게 새 스냅샷을 전달합니다.
        """
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            commit_time = self._next_commit_time()
            result = mutate(docs, commit_time)
            self._version += 1
            version = self._version
            watches = [w for w in self._watches if w.collection == collection]
            views = {id(w): self._query(collection, w.order_by, w.descending) for w in watches}

        with self._delivery_lock:
            for w in watches:
                w.deliver(version, views[id(w)], commit_time)
        return result

    def _remove_watch(self, watch: _MemoryWatch) -> None:
        with self._lock:
            watch.active = False
            if watch in self._watches:
                self._watches.remove(watch)

    # --- DocumentStore 구현 ---

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]

        def _mutate(docs, commit_time):
            docs[doc_id] = self._resolve(data, commit_time)
            return doc_id

        return self._commit(collection, _mutate)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        def _mutate(docs, commit_time):
            docs[doc_id] = self._resolve(data, commit_time)

        self._commit(collection, _mutate)

    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> None:
        def _mutate(docs, commit_time):
            if doc_id not in docs:
                raise NotFoundError(f"문서를 찾을 수 없습니다 ({collection}/{doc_id}).")
            doc = docs[doc_id]
            for key, value in updates.items():
                doc[key] = self._apply_field(doc.get(key), value, commit_time)

        self._commit(collection, _mutate)

    def update_in_transaction(self, collection: str, doc_id: str, decide: UpdateDecider) -> Dict[str, Any]:
        def _mutate(docs, commit_time):
            if doc_id not in docs:
                raise NotFoundError(f"문서를 찾을 수 없습니다 ({collection}/{doc_id}).")
            doc = docs[doc_id]
            updates = decide(copy.deepcopy(doc)) or {}
            for key, value in updates.items():
                doc[key] = self._apply_field(doc.get(key), value, commit_time)
            return updates

        return self._commit(collection, _mutate)

    def watch(self, collection: str, order_by: str, on_snapshot: SnapshotCallback,
              on_error: ErrorCallback, descending: bool = True) -> Watch:
        watch = _MemoryWatch(self, collection, order_by, descending, on_snapshot, on_error)
        with self._lock:
            self._watches.append(watch)
            version = self._version
            read_time = self._last_commit_time or DateTimeUtils.now()
            documents = self._query(collection, order_by, descending)

        with self._delivery_lock:
            watch.deliver(version, documents, read_time)
        return watch

    def disconnect(self, error: Optional[Exception] = None) -> None:
        """모든 실시간 구독을 오류로 종료합니다. (연결 끊김 재현용)"""
        with self._lock:
            watches = list(self._watches)
            self._watches.clear()
            for w in watches:
                w.active = False

        failure = BackingStoreError("실시간 구독 연결이 종료되었습니다.", cause=error)
        for w in watches:
            logger.warning(f"인메모리 구독 종료 (Collection: {w.collection})")
            try:
                w.on_error(failure)
            except Exception as e:
                logger.error(f"인메모리 구독 오류 콜백 처리 중 오류 발생: {e}", exc_info=True)
