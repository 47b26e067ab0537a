"""Content repository and follower store backed by SQLAlchemy.

The federation core only depends on the two small protocols below; the
SQL implementations are the default collaborators wired by the app.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.text import htmlify
from app.models.activitypub import Follower, Link, LinkTag
from app.models.content import ContentItem

logger = logging.getLogger(__name__)

_re_sitename = re.compile(r"//([^/]+)/")


class ContentRepository(Protocol):
    async def get_item(self, item_id: int) -> Optional[ContentItem]: ...

    async def list_items(self, before: Optional[int] = None, limit: int = 20) -> List[ContentItem]: ...


class FollowerStore(Protocol):
    async def add(self, actor: str) -> None: ...

    async def remove(self, actor: str) -> None: ...

    async def list(self) -> List[str]: ...


def _to_item(link: Link) -> ContentItem:
    posted = link.posted
    if posted is not None and posted.tzinfo is None:
        posted = posted.replace(tzinfo=timezone.utc)
    return ContentItem(
        id=link.id,
        url=link.url,
        title=link.title,
        summary=htmlify(link.summary or ""),
        posted=posted,
        tags=[t.tag for t in link.tags],
        source=link.source or "",
        site=link.site or "",
    )


def site_from_url(url: str) -> str:
    match = _re_sitename.search(url)
    return match.group(1) if match else ""


def normalize_title(title: str) -> str:
    """ALL CAPS multi-word titles become title case."""
    if title.upper() == title and " " in title:
        return title.lower().title()
    return title


class SQLContentRepository:
    """連結資料存取"""

    def __init__(self, sessionmaker: async_sessionmaker):
        self.sessionmaker = sessionmaker

    async def get_item(self, item_id: int) -> Optional[ContentItem]:
        async with self.sessionmaker() as session:
            link = await session.get(Link, item_id)
            return _to_item(link) if link else None

    async def list_items(self, before: Optional[int] = None, limit: int = 20) -> List[ContentItem]:
        stmt = select(Link).order_by(Link.id.desc()).limit(limit)
        if before is not None:
            stmt = stmt.where(Link.id < before)
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return [_to_item(link) for link in result.scalars().all()]

    async def save_item(
        self,
        url: str,
        title: str,
        summary: str = "",
        tags: Iterable[str] = (),
        source: str = "",
        item_id: Optional[int] = None,
        posted: Optional[datetime] = None,
    ) -> Optional[int]:
        """新增或更新連結，回傳 id；更新不存在的 id 時回傳 None"""
        title = normalize_title(title)
        async with self.sessionmaker() as session:
            if item_id is not None:
                link = await session.get(Link, item_id)
                if link is None:
                    return None
                link.url = url
                link.title = title
                link.summary = summary
                link.source = source
                link.site = site_from_url(url)
                link.tags.clear()
            else:
                link = Link(
                    url=url,
                    title=title,
                    summary=summary,
                    source=source,
                    site=site_from_url(url),
                    posted=posted or datetime.now(timezone.utc),
                )
                session.add(link)
            for tag in tags:
                if tag:
                    link.tags.append(LinkTag(tag=tag))
            await session.commit()
            logger.info("save link: %s", url)
            return link.id

    async def last_url(self) -> Optional[str]:
        async with self.sessionmaker() as session:
            result = await session.execute(select(Link.url).order_by(Link.id.desc()).limit(1))
            return result.scalar_one_or_none()


class SQLFollowerStore:
    """追蹤者資料存取"""

    def __init__(self, sessionmaker: async_sessionmaker):
        self.sessionmaker = sessionmaker

    async def add(self, actor: str) -> None:
        async with self.sessionmaker() as session:
            existing = await session.execute(select(Follower.id).where(Follower.url == actor))
            if existing.scalar_one_or_none() is not None:
                return
            session.add(Follower(url=actor))
            await session.commit()

    async def remove(self, actor: str) -> None:
        async with self.sessionmaker() as session:
            await session.execute(delete(Follower).where(Follower.url == actor))
            await session.commit()

    async def list(self) -> List[str]:
        async with self.sessionmaker() as session:
            result = await session.execute(select(Follower.url).order_by(Follower.id))
            return list(result.scalars().all())

    async def count(self) -> int:
        async with self.sessionmaker() as session:
            result = await session.execute(select(func.count(Follower.id)))
            return result.scalar_one()
