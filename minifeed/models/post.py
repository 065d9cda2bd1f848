# minifeed/models/post.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional

from minifeed.utils.datetime_utils import DateTimeUtils

# 저장소에 필드가 없을 때 읽기 시점에 채워 넣는 기본값
DEFAULT_POST_USER_ID = 'Unknown'
DEFAULT_POST_USER_NAME = 'User'
DEFAULT_POST_TEXT = 'No content'


def _text_or(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


def _share_count(value: Any) -> int:
    # bool은 int의 하위 타입이지만 횟수로 취급하지 않음
    if isinstance(value, int) and not isinstance(value, bool):
        return max(0, value)
    return 0


@dataclass
class Comment:
    """
    Post 문서의 'comments' 배열에 저장되는 댓글 구조를 정의하는 데이터클래스.
    """
    comment_id: str
    user_id: str
    user_name: str
    text: str
    created_at: datetime = field(default_factory=DateTimeUtils.now)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Comment':
        return cls(
            comment_id=_text_or(data.get('id'), ''),
            user_id=_text_or(data.get('userId'), ''),
            user_name=_text_or(data.get('userName'), ''),
            text=_text_or(data.get('text'), ''),
            created_at=DateTimeUtils.to_utc(data.get('timestamp')),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Firestore 저장용 레코드 (CommentRecord)"""
        return {
            'id': self.comment_id,
            'userId': self.user_id,
            'userName': self.user_name,
            'text': self.text,
            'timestamp': self.created_at,
        }


@dataclass
class Post:
    """
    Firestore 'posts' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    liked_by는 중복 없는 사용자 ID 목록, comments는 추가만 되는 목록입니다.
    """
    post_id: str
    user_id: str
    user_name: str
    text: str
    created_at: datetime
    liked_by: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    share_count: int = 0

    @classmethod
    def from_document(cls, post_id: str, data: Optional[Dict[str, Any]]) -> 'Post':
        """
        저장소 문서를 Post로 변환합니다.
        누락되었거나 타입이 맞지 않는 필드는 예외 없이 기본값으로 채웁니다.
        """
        data = data or {}
        likes = data.get('likes')
        likes = likes if isinstance(likes, list) else []
        # 배열 순서를 유지하면서 중복 제거
        liked_by = list(dict.fromkeys(u for u in likes if isinstance(u, str) and u))
        comments = data.get('comments')
        comments = comments if isinstance(comments, list) else []
        comments = [Comment.from_dict(c) for c in comments if isinstance(c, dict)]
        return cls(
            post_id=post_id,
            user_id=_text_or(data.get('userId'), DEFAULT_POST_USER_ID),
            user_name=_text_or(data.get('userName'), DEFAULT_POST_USER_NAME),
            text=_text_or(data.get('text'), DEFAULT_POST_TEXT),
            created_at=DateTimeUtils.to_utc(data.get('timestamp')),
            liked_by=liked_by,
            comments=comments,
            share_count=_share_count(data.get('shareCount')),
        )

    def is_liked_by(self, user_id: str) -> bool:
        return user_id in self.liked_by

    def to_dict(self) -> Dict[str, Any]:
        """API 응답 직렬화를 위한 dict (marshmallow 스키마 입력)"""
        return {
            'post_id': self.post_id,
            'user_id': self.user_id,
            'user_name': self.user_name,
            'text': self.text,
            'created_at': self.created_at,
            'liked_by': list(self.liked_by),
            'like_count': len(self.liked_by),
            'comments': [
                {
                    'comment_id': c.comment_id,
                    'user_id': c.user_id,
                    'user_name': c.user_name,
                    'text': c.text,
                    'created_at': c.created_at,
                }
                for c in self.comments
            ],
            'comment_count': len(self.comments),
            'share_count': self.share_count,
        }


@dataclass
class FeedSnapshot:
    """특정 커밋 시점의 전체 게시글 목록 (created_at 내림차순)."""
    posts: List[Post]
    read_time: datetime
