# minifeed/services/document_store.py
"""
피드 서비스가 사용하는 문서 저장소 인터페이스.

필드 변경은 Firestore의 원자적 변환 값(firestore.ArrayUnion, firestore.ArrayRemove,
firestore.Increment, firestore.SERVER_TIMESTAMP)으로 표현하며, 구현체는 이를
저장소 수준에서 원자적으로 적용해야 합니다. 문서 전체를 읽고 수정해서 다시 쓰는
방식은 허용하지 않습니다.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

# (문서 ID, 문서 데이터) 목록과 읽기 시각을 받는 콜백
SnapshotCallback = Callable[[List[Tuple[str, Dict[str, Any]]], datetime], None]
ErrorCallback = Callable[[Exception], None]
# 트랜잭션 안에서 현재 문서 데이터를 보고 적용할 필드 변경을 결정하는 함수
UpdateDecider = Callable[[Dict[str, Any]], Dict[str, Any]]


class Watch(ABC):
    """실시간 쿼리 구독 핸들."""

    @abstractmethod
    def unsubscribe(self) -> None:
        ...


class DocumentStore(ABC):

    @abstractmethod
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """새 문서를 생성하고 저장소가 부여한 문서 ID를 반환합니다."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """문서가 없으면 None을 반환합니다."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> None:
        """
        필드 변경을 원자적으로 적용합니다.
        문서가 없으면 NotFoundError를 발생시킵니다.
        """

    @abstractmethod
    def update_in_transaction(self, collection: str, doc_id: str, decide: UpdateDecider) -> Dict[str, Any]:
        """
        하나의 트랜잭션 안에서 문서를 읽고, decide(현재 데이터)가 반환한 필드 변경을 적용합니다.
        읽은 뒤 문서가 바뀌었다면 저장소의 재시도 정책에 따라 다시 읽고 결정합니다.
        문서가 없으면 NotFoundError를 발생시키고, 적용된 변경 dict를 반환합니다.
        """

    @abstractmethod
    def watch(self, collection: str, order_by: str, on_snapshot: SnapshotCallback,
              on_error: ErrorCallback, descending: bool = True) -> Watch:
        """
        컬렉션 전체를 order_by 기준으로 정렬한 실시간 쿼리를 구독합니다.
        등록 직후 현재 상태를 한 번 전달하고, 이후 커밋마다 전체 목록을 다시 전달합니다.
        연결 오류 시 on_error를 한 번 호출하고 구독을 종료합니다.
        """
