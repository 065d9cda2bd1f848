# minifeed/services/firestore_store.py
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Optional

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from minifeed.core.exceptions import BackingStoreError, FeedError, NotFoundError
from minifeed.services.document_store import (
    DocumentStore, ErrorCallback, SnapshotCallback, UpdateDecider, Watch
)
from minifeed.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(action: str, collection: str, doc_id: Optional[str] = None):
    """google-cloud 예외를 피드 도메인 예외로 변환합니다."""
    try:
        yield
    except FeedError:
        raise
    except google_exceptions.NotFound as e:
        raise NotFoundError(f"문서를 찾을 수 없습니다 ({collection}/{doc_id}).", cause=e) from e
    except google_exceptions.GoogleAPIError as e:
        logger.error(f"Firestore {action} 실패 (Collection: {collection}, Doc ID: {doc_id}): {e}", exc_info=True)
        raise BackingStoreError(f"Firestore {action} 중 오류가 발생했습니다.", cause=e) from e


class _FirestoreWatch(Watch):
    """
    Query.on_snapshot 구독을 감싸는 핸들.
    Watch 객체는 오류 콜백을 제공하지 않으므로 내부 bidi RPC의 종료를 감지해
    unsubscribe 이외의 이유로 끊긴 경우 on_error로 알립니다.
    """

    def __init__(self, query, on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._cancelled = False
        self._callback_thread: Optional[threading.Thread] = None
        self._watch = query.on_snapshot(self._handle_snapshot)

        rpc = getattr(self._watch, '_rpc', None)
        if rpc is not None:
            rpc.add_done_callback(self._handle_rpc_done)
        else:
            logger.warning("Firestore Watch에서 RPC 핸들을 찾을 수 없어 연결 종료를 감지할 수 없습니다.")

    def _handle_snapshot(self, docs, changes, read_time):
        self._callback_thread = threading.current_thread()
        if self._cancelled:
            return
        documents = [(doc.id, doc.to_dict() or {}) for doc in docs]
        self._on_snapshot(documents, DateTimeUtils.to_utc(read_time))

    def _handle_rpc_done(self, future):
        if self._cancelled:
            return
        self._cancelled = True
        cause = future if isinstance(future, Exception) else None
        logger.warning(f"Firestore 실시간 구독 연결이 종료되었습니다: {future}")
        self._on_error(BackingStoreError("실시간 구독 연결이 종료되었습니다.", cause=cause))

    def unsubscribe(self) -> None:
        self._cancelled = True
        # 콜백 스레드 안에서는 자기 자신을 join할 수 없으므로 별도 스레드에서 정리합니다.
        if threading.current_thread() is self._callback_thread:
            threading.Thread(target=self._watch.unsubscribe, daemon=True).start()
        else:
            self._watch.unsubscribe()


class FirestoreDocumentStore(DocumentStore):
    """
    firebase-admin Firestore 클라이언트를 사용하는 DocumentStore 구현체.
    firebase_admin.initialize_app() 이후에 생성해야 합니다.
    """

    def __init__(self, client=None):
        self.db = client or firestore.client()

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        with _translate_errors('저장', collection):
            doc_ref = self.db.collection(collection).document()
            doc_ref.set(data)
            logger.info(f"Firestore 저장 성공 (Collection: {collection}, Doc ID: {doc_ref.id})")
            return doc_ref.id

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with _translate_errors('조회', collection, doc_id):
            doc = self.db.collection(collection).document(doc_id).get()
            if not doc.exists:
                return None
            return doc.to_dict()

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with _translate_errors('저장', collection, doc_id):
            self.db.collection(collection).document(doc_id).set(data)

    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> None:
        with _translate_errors('수정', collection, doc_id):
            self.db.collection(collection).document(doc_id).update(updates)

    def update_in_transaction(self, collection: str, doc_id: str, decide: UpdateDecider) -> Dict[str, Any]:
        doc_ref = self.db.collection(collection).document(doc_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _update_in_transaction(transaction, doc_ref):
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError(f"문서를 찾을 수 없습니다 ({collection}/{doc_id}).")
            updates = decide(snapshot.to_dict() or {})
            if updates:
                transaction.update(doc_ref, updates)
            return updates

        with _translate_errors('트랜잭션', collection, doc_id):
            try:
                return _update_in_transaction(transaction, doc_ref)
            except ValueError as e:
                # 재시도 횟수를 모두 소진한 커밋 실패
                logger.error(f"Firestore 트랜잭션 커밋 실패 (Collection: {collection}, Doc ID: {doc_id}): {e}", exc_info=True)
                raise BackingStoreError("트랜잭션 커밋에 실패했습니다.", cause=e) from e

    def watch(self, collection: str, order_by: str, on_snapshot: SnapshotCallback,
              on_error: ErrorCallback, descending: bool = True) -> Watch:
        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        query = self.db.collection(collection).order_by(order_by, direction=direction)
        with _translate_errors('구독', collection):
            return _FirestoreWatch(query, on_snapshot, on_error)
