# minifeed/api/posts/test_live_query.py
"""
실시간 피드 구독(LiveQueryChannel) 테스트
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from firebase_admin import firestore

from minifeed.core.exceptions import BackingStoreError
from minifeed.services.document_store import DocumentStore, Watch
from conftest import ALICE, BOB
from minifeed.api.posts.live_query import LiveQueryChannel

TIMEOUT = 5


class _StubWatch(Watch):
    def __init__(self):
        self.unsubscribed = False

    def unsubscribe(self):
        self.unsubscribed = True


class ManualWatchStore(DocumentStore):
    """watch 콜백을 테스트가 직접 호출할 수 있도록 보관하는 저장소."""

    def __init__(self):
        self.watch_calls = 0
        self.on_snapshot = None
        self.on_error = None
        self.handle = _StubWatch()

    def add(self, collection, data):
        raise NotImplementedError

    def get(self, collection, doc_id):
        raise NotImplementedError

    def set(self, collection, doc_id, data):
        raise NotImplementedError

    def update(self, collection, doc_id, updates):
        raise NotImplementedError

    def update_in_transaction(self, collection, doc_id, decide):
        raise NotImplementedError

    def watch(self, collection, order_by, on_snapshot, on_error, descending=True):
        self.watch_calls += 1
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        return self.handle


async def _next(stream):
    return await asyncio.wait_for(stream.__anext__(), TIMEOUT)


async def _next_matching(stream, predicate):
    while True:
        snapshot = await _next(stream)
        if predicate(snapshot):
            return snapshot


# --- 종단 간 시나리오 ---

def test_published_post_appears_first_in_next_emission(feed_store):
    async def scenario():
        old_id = await feed_store.publish_post(BOB, 'earlier post')
        stream = feed_store.live_query().snapshots()
        try:
            initial = await _next(stream)
            assert [p.post_id for p in initial.posts] == [old_id]

            post_id = await feed_store.publish_post(ALICE, 'hello')
            snapshot = await _next_matching(stream, lambda s: len(s.posts) == 2)
        finally:
            await stream.aclose()

        newest = snapshot.posts[0]
        assert newest.post_id == post_id
        assert newest.user_name == 'alice'
        assert newest.text == 'hello'
        assert newest.liked_by == []
        assert newest.comments == []
        assert newest.share_count == 0
        assert snapshot.posts[1].post_id == old_id

    asyncio.run(scenario())


def test_like_toggle_is_visible_in_emissions(feed_store):
    async def scenario():
        post_id = await feed_store.publish_post(ALICE, 'hello')
        stream = feed_store.live_query().snapshots()
        try:
            await _next(stream)

            await feed_store.toggle_like(BOB, post_id)
            liked = await _next_matching(stream, lambda s: s.posts[0].liked_by == ['u2'])
            assert liked.posts[0].is_liked_by('u2')

            await feed_store.toggle_like(BOB, post_id)
            unliked = await _next_matching(stream, lambda s: s.posts[0].liked_by == [])
            assert not unliked.posts[0].is_liked_by('u2')
        finally:
            await stream.aclose()

    asyncio.run(scenario())


def test_concurrent_comments_are_both_visible(feed_store):
    async def scenario():
        post_id = await feed_store.publish_post(ALICE, 'hello')
        stream = feed_store.live_query().snapshots()
        try:
            await _next(stream)
            await asyncio.gather(
                feed_store.add_comment(ALICE, post_id, 'A'),
                feed_store.add_comment(BOB, post_id, 'B'),
            )
            snapshot = await _next_matching(stream, lambda s: len(s.posts[0].comments) == 2)
        finally:
            await stream.aclose()

        texts = [c.text for c in snapshot.posts[0].comments]
        assert sorted(texts) == ['A', 'B']

    asyncio.run(scenario())


def test_read_times_never_go_backwards(feed_store):
    async def scenario():
        post_id = await feed_store.publish_post(ALICE, 'hello')
        stream = feed_store.live_query().snapshots()
        read_times = []
        try:
            read_times.append((await _next(stream)).read_time)
            await asyncio.gather(*(feed_store.increment_share_count(post_id) for _ in range(10)))
            while True:
                snapshot = await _next(stream)
                read_times.append(snapshot.read_time)
                if snapshot.posts[0].share_count == 10:
                    break
        finally:
            await stream.aclose()
        assert read_times == sorted(read_times)

    asyncio.run(scenario())


def test_malformed_document_does_not_end_subscription(store, feed_store):
    """잘못된 필드 값을 가진 문서가 있어도 나머지 게시글과 함께 전달되어야 함"""
    store.set('posts', 'bad', {
        'timestamp': 'not-a-date',
        'shareCount': 'n/a',
        'likes': 'u2',
        'userName': 42,
    })
    post_id = asyncio.run(feed_store.publish_post(ALICE, 'hello'))

    received, errors = [], []
    subscription = feed_store.live_query().subscribe(received.append, errors.append)
    try:
        assert errors == []
        assert subscription.active
        posts = {p.post_id: p for p in received[-1].posts}
        assert set(posts) == {'bad', post_id}

        bad = posts['bad']
        assert bad.share_count == 0
        assert bad.liked_by == []
        assert bad.user_name == 'User'
        assert bad.text == 'No content'
        assert posts[post_id].text == 'hello'
    finally:
        subscription.cancel()


def test_snapshots_keep_only_latest_for_slow_consumer(store, feed_store):
    async def scenario():
        stream = feed_store.live_query().snapshots()
        try:
            await _next(stream)
            # 소비하지 않는 동안 커밋이 여러 번 일어남
            for i in range(20):
                store.add('posts', {'text': f"post {i}", 'timestamp': firestore.SERVER_TIMESTAMP})

            snapshot = await _next(stream)
            assert len(snapshot.posts) == 20
            assert snapshot.posts[0].text == 'post 19'

            # 밀린 스냅샷이 남아 있지 않아야 함
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(stream.__anext__(), 0.05)
        finally:
            await stream.aclose()

    asyncio.run(scenario())


# --- 구독/취소 ---

def test_cancel_stops_delivery(feed_store):
    received = []
    subscription = feed_store.live_query().subscribe(received.append)
    assert len(received) == 1

    asyncio.run(feed_store.publish_post(ALICE, 'hello'))
    assert len(received) == 2

    subscription.cancel()
    assert not subscription.active
    asyncio.run(feed_store.publish_post(ALICE, 'again'))
    assert len(received) == 2


def test_snapshots_is_lazy_and_cancels_on_close():
    store = ManualWatchStore()
    channel = LiveQueryChannel(store)

    async def scenario():
        stream = channel.snapshots()
        # 반복을 시작하기 전에는 구독하지 않음
        assert store.watch_calls == 0

        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        assert store.watch_calls == 1

        store.on_snapshot([], datetime.now(timezone.utc))
        snapshot = await asyncio.wait_for(pending, TIMEOUT)
        assert snapshot.posts == []

        await stream.aclose()
        assert store.handle.unsubscribed

    asyncio.run(scenario())


def test_stale_snapshots_are_dropped():
    store = ManualWatchStore()
    received = []
    LiveQueryChannel(store).subscribe(received.append)

    now = datetime.now(timezone.utc)
    store.on_snapshot([('p2', {'text': 'newer'})], now)
    store.on_snapshot([('p1', {'text': 'older'})], now - timedelta(seconds=1))
    store.on_snapshot([('p3', {'text': 'same time'})], now)

    assert [s.posts[0].post_id for s in received] == ['p2', 'p3']


# --- 오류 처리 ---

def test_connection_error_terminates_subscription(store, feed_store):
    errors = []
    subscription = feed_store.live_query().subscribe(lambda s: None, errors.append)

    store.disconnect(ConnectionError("network down"))

    assert len(errors) == 1
    assert isinstance(errors[0], BackingStoreError)
    assert not subscription.active


def test_connection_error_is_raised_from_async_iterator(store, feed_store):
    async def scenario():
        stream = feed_store.live_query().snapshots()
        await _next(stream)
        store.disconnect(ConnectionError("network down"))
        with pytest.raises(BackingStoreError):
            await _next(stream)

    asyncio.run(scenario())


def test_raw_watch_errors_are_wrapped():
    store = ManualWatchStore()
    errors = []
    LiveQueryChannel(store).subscribe(lambda s: None, errors.append)

    store.on_error(RuntimeError("stream reset"))

    assert isinstance(errors[0], BackingStoreError)
    assert isinstance(errors[0].cause, RuntimeError)
    assert store.handle.unsubscribed


def test_failing_observer_is_unsubscribed_and_reported(feed_store):
    errors = []

    def observer(snapshot):
        if snapshot.posts:
            raise RuntimeError("render failed")

    subscription = feed_store.live_query().subscribe(observer, errors.append)
    asyncio.run(feed_store.publish_post(ALICE, 'hello'))

    assert not subscription.active
    assert isinstance(errors[0], RuntimeError)


def test_failing_error_observer_does_not_fail_the_write(feed_store):
    def observer(snapshot):
        if snapshot.posts:
            raise RuntimeError("render failed")

    def on_error(error):
        raise RuntimeError("error handler failed")

    feed_store.live_query().subscribe(observer, on_error)
    received = []
    feed_store.live_query().subscribe(received.append)

    # 커밋은 성공으로 끝나고 다른 구독자도 스냅샷을 받아야 함
    post_id = asyncio.run(feed_store.publish_post(ALICE, 'hello'))
    assert received[-1].posts[0].post_id == post_id
