# minifeed/services/test_firestore_store.py
"""
FirestoreDocumentStore 테스트

Firestore 클라이언트를 MagicMock으로 대체해 예외 변환, 트랜잭션, 실시간 구독 처리를 확인합니다.
"""

import logging
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from minifeed.core.exceptions import BackingStoreError, NotFoundError
from minifeed.services import firestore_store
from minifeed.services.firestore_store import FirestoreDocumentStore

TIMEOUT = 5
READ_TIME = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def doc_ref(client):
    return client.collection.return_value.document.return_value


@pytest.fixture
def query(client):
    return client.collection.return_value.order_by.return_value


def _without_retries(fn):
    """firestore.transactional 대신 트랜잭션 함수를 한 번만 실행합니다."""
    return fn


# --- 기본 읽기/쓰기 ---

def test_add_and_get(client, doc_ref):
    doc_ref.id = 'generated-id'
    store = FirestoreDocumentStore(client)

    assert store.add('posts', {'text': 'hello'}) == 'generated-id'
    doc_ref.set.assert_called_once_with({'text': 'hello'})

    doc_ref.get.return_value.exists = False
    assert store.get('posts', 'missing') is None

    doc_ref.get.return_value.exists = True
    doc_ref.get.return_value.to_dict.return_value = {'text': 'hello'}
    assert store.get('posts', 'p1') == {'text': 'hello'}


def test_not_found_is_translated(client, doc_ref):
    doc_ref.update.side_effect = google_exceptions.NotFound("no document")
    store = FirestoreDocumentStore(client)

    with pytest.raises(NotFoundError) as exc_info:
        store.update('posts', 'missing', {'shareCount': firestore.Increment(1)})
    assert isinstance(exc_info.value.cause, google_exceptions.NotFound)


def test_google_api_errors_become_backing_store_errors(client, doc_ref):
    doc_ref.set.side_effect = google_exceptions.ServiceUnavailable("network down")
    doc_ref.get.side_effect = google_exceptions.DeadlineExceeded("timeout")
    store = FirestoreDocumentStore(client)

    with pytest.raises(BackingStoreError):
        store.set('posts', 'p1', {'text': 'hello'})
    with pytest.raises(BackingStoreError):
        store.get('posts', 'p1')


# --- 트랜잭션 ---

def test_update_in_transaction_applies_decided_updates(monkeypatch, client, doc_ref):
    monkeypatch.setattr(firestore_store.firestore, 'transactional', _without_retries)
    transaction = client.transaction.return_value
    snapshot = doc_ref.get.return_value
    snapshot.exists = True
    snapshot.to_dict.return_value = {'likes': ['u1']}
    store = FirestoreDocumentStore(client)

    seen = []
    def decide(data):
        seen.append(data)
        return {'likes': firestore.ArrayRemove(['u1'])}

    updates = store.update_in_transaction('posts', 'p1', decide)

    assert seen == [{'likes': ['u1']}]
    doc_ref.get.assert_called_once_with(transaction=transaction)
    transaction.update.assert_called_once_with(doc_ref, updates)
    assert isinstance(updates['likes'], firestore.ArrayRemove)


def test_update_in_transaction_missing_document(monkeypatch, client, doc_ref):
    monkeypatch.setattr(firestore_store.firestore, 'transactional', _without_retries)
    doc_ref.get.return_value.exists = False
    store = FirestoreDocumentStore(client)

    with pytest.raises(NotFoundError):
        store.update_in_transaction('posts', 'missing', lambda data: {'likes': []})
    client.transaction.return_value.update.assert_not_called()


def test_exhausted_transaction_retries_become_backing_store_error(monkeypatch, client):
    def exhausted(fn):
        def _run(transaction, *args):
            # 재시도 횟수를 모두 소진했을 때 firestore.transactional이 올리는 예외
            raise ValueError("Failed to commit transaction in 5 attempts.")
        return _run

    monkeypatch.setattr(firestore_store.firestore, 'transactional', exhausted)
    store = FirestoreDocumentStore(client)

    with pytest.raises(BackingStoreError) as exc_info:
        store.update_in_transaction('posts', 'p1', lambda data: {})
    assert isinstance(exc_info.value.cause, ValueError)


# --- 실시간 구독 ---

def test_watch_orders_query_and_maps_documents(client, query):
    store = FirestoreDocumentStore(client)
    received = []
    store.watch('posts', 'timestamp', lambda docs, read_time: received.append((docs, read_time)), lambda e: None)

    client.collection.return_value.order_by.assert_called_once_with(
        'timestamp', direction=firestore.Query.DESCENDING
    )
    callback = query.on_snapshot.call_args[0][0]

    doc = MagicMock()
    doc.id = 'p1'
    doc.to_dict.return_value = {'text': 'hello'}
    empty = MagicMock()
    empty.id = 'p2'
    empty.to_dict.return_value = None
    callback([doc, empty], [], READ_TIME)

    assert received == [([('p1', {'text': 'hello'}), ('p2', {})], READ_TIME)]


def test_rpc_termination_is_reported_once(client, query):
    store = FirestoreDocumentStore(client)
    errors = []
    store.watch('posts', 'timestamp', lambda docs, read_time: None, errors.append)
    rpc = query.on_snapshot.return_value._rpc
    on_done = rpc.add_done_callback.call_args[0][0]

    on_done(ConnectionError("stream reset"))
    on_done(ConnectionError("stream reset"))

    assert len(errors) == 1
    assert isinstance(errors[0], BackingStoreError)
    assert isinstance(errors[0].cause, ConnectionError)


def test_rpc_termination_after_unsubscribe_is_silent(client, query):
    store = FirestoreDocumentStore(client)
    errors = []
    received = []
    handle = store.watch('posts', 'timestamp', lambda docs, read_time: received.append(docs), errors.append)
    on_done = query.on_snapshot.return_value._rpc.add_done_callback.call_args[0][0]
    on_snapshot = query.on_snapshot.call_args[0][0]

    handle.unsubscribe()
    query.on_snapshot.return_value.unsubscribe.assert_called_once_with()

    on_done(None)
    on_snapshot([], [], READ_TIME)
    assert errors == []
    assert received == []


def test_unsubscribe_inside_snapshot_callback_runs_on_another_thread(client, query):
    raw_watch = query.on_snapshot.return_value
    done = threading.Event()
    unsubscribe_threads = []

    def fake_unsubscribe():
        unsubscribe_threads.append(threading.current_thread())
        done.set()

    raw_watch.unsubscribe.side_effect = fake_unsubscribe
    store = FirestoreDocumentStore(client)
    handles = []

    def on_snapshot(docs, read_time):
        handles[0].unsubscribe()

    handles.append(store.watch('posts', 'timestamp', on_snapshot, lambda e: None))
    callback = query.on_snapshot.call_args[0][0]
    callback([], [], READ_TIME)

    # 콜백 스레드는 자기 자신을 join할 수 없으므로 다른 스레드에서 정리되어야 함
    assert done.wait(TIMEOUT)
    assert unsubscribe_threads[0] is not threading.current_thread()


def test_watch_without_rpc_handle_logs_warning(client, query, caplog):
    del query.on_snapshot.return_value._rpc
    store = FirestoreDocumentStore(client)

    with caplog.at_level(logging.WARNING, logger='minifeed.services.firestore_store'):
        store.watch('posts', 'timestamp', lambda docs, read_time: None, lambda e: None)

    assert any('RPC' in record.getMessage() for record in caplog.records)
