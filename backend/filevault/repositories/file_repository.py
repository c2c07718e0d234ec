from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filevault.models.file import File
from filevault.models.share_link import ShareLink
from filevault.schemas.file import FileRecord, FileSearch, ShareLinkRecord
from filevault.utils.timeutils import utcnow


def _parse_date(value: str | None) -> datetime | None:
    try:
        text = (value or "").strip()
        return datetime.strptime(text, "%Y-%m-%d") if text else None
    except ValueError:
        return None


class FileRepository:
    """Metadata store adapter for file and share-link rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_file(
        self,
        owner_id: int,
        name: str,
        size: int,
        content_type: str,
        storage_key: str,
        public_url: str,
        is_public: bool = False,
        expires_at: datetime | None = None,
    ) -> FileRecord:
        now = utcnow()
        row = File(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=name,
            size=size,
            content_type=content_type,
            storage_key=storage_key,
            public_url=public_url,
            is_public=is_public,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as db:
            db.add(row)
            await db.commit()
        return FileRecord.model_validate(row)

    async def get_file(self, file_id: str) -> FileRecord | None:
        async with self._session_factory() as db:
            res = await db.execute(select(File).where(File.id == file_id))
            row = res.scalars().first()
        return FileRecord.model_validate(row) if row else None

    async def list_files(self, owner_id: int, limit: int, offset: int) -> list[FileRecord]:
        query = (
            select(File)
            .where(File.owner_id == owner_id)
            .order_by(File.created_at.desc(), File.id)
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
        return [FileRecord.model_validate(r) for r in rows]

    async def search_files(self, owner_id: int, search: FileSearch) -> list[FileRecord]:
        conditions = [File.owner_id == owner_id]
        if search.query and search.query.strip():
            conditions.append(File.name.ilike(f"%{search.query.strip()}%"))
        if search.file_type and search.file_type.strip():
            conditions.append(File.content_type.ilike(f"%{search.file_type.strip()}%"))

        start = _parse_date(search.start_date)
        if start:
            conditions.append(File.created_at >= start)
        end = _parse_date(search.end_date)
        if end:
            # the end date is inclusive
            conditions.append(File.created_at < end + timedelta(days=1))

        query = (
            select(File)
            .where(and_(*conditions))
            .order_by(File.created_at.desc(), File.id)
            .offset(search.offset)
            .limit(search.limit)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
        return [FileRecord.model_validate(r) for r in rows]

    async def update_file(
        self,
        file_id: str,
        owner_id: int,
        name: str,
        is_public: bool,
        expires_at: datetime | None,
        updated_at: datetime | None = None,
    ) -> int:
        """Owner-scoped update. Returns the affected row count (0: not found or not owned)."""
        stmt = (
            update(File)
            .where(File.id == file_id, File.owner_id == owner_id)
            .values(
                name=name,
                is_public=is_public,
                expires_at=expires_at,
                updated_at=updated_at or utcnow(),
            )
        )
        async with self._session_factory() as db:
            res = await db.execute(stmt)
            await db.commit()
        return res.rowcount

    async def delete_file(self, file_id: str, owner_id: int) -> int:
        """Owner-scoped delete of a file row and its share links. Returns the affected row count."""
        async with self._session_factory() as db:
            res = await db.execute(
                delete(File).where(File.id == file_id, File.owner_id == owner_id)
            )
            if res.rowcount:
                await db.execute(delete(ShareLink).where(ShareLink.file_id == file_id))
            await db.commit()
        return res.rowcount

    async def get_expired_files(self, limit: int, now: datetime | None = None) -> list[FileRecord]:
        now = now or utcnow()
        query = (
            select(File)
            .where(File.expires_at.is_not(None), File.expires_at < now)
            .order_by(File.expires_at)
            .limit(limit)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
        return [FileRecord.model_validate(r) for r in rows]

    async def delete_expired_files(self, file_ids: list[str], now: datetime | None = None) -> list[str]:
        """
        Bulk delete of the given rows, restricted to rows that are still expired.
        A row whose expiry was pushed out concurrently is left alone.

        Returns:
            The ids of the rows actually deleted.
        """
        if not file_ids:
            return []
        now = now or utcnow()
        async with self._session_factory() as db:
            expired_ids = (
                await db.execute(
                    select(File.id).where(
                        File.id.in_(file_ids),
                        File.expires_at.is_not(None),
                        File.expires_at < now,
                    )
                )
            ).scalars().all()
            if not expired_ids:
                return []
            await db.execute(delete(ShareLink).where(ShareLink.file_id.in_(expired_ids)))
            await db.execute(delete(File).where(File.id.in_(expired_ids), File.expires_at < now))
            await db.commit()
        return list(expired_ids)

    async def create_share_link(self, file_id: str, token: str, expires_at: datetime | None) -> ShareLinkRecord:
        link = ShareLink(
            id=str(uuid.uuid4()),
            file_id=file_id,
            token=token,
            expires_at=expires_at,
            created_at=utcnow(),
        )
        async with self._session_factory() as db:
            db.add(link)
            await db.commit()
        return ShareLinkRecord.model_validate(link)

    async def get_share_link(self, token: str) -> ShareLinkRecord | None:
        async with self._session_factory() as db:
            res = await db.execute(select(ShareLink).where(ShareLink.token == token))
            link = res.scalars().first()
        return ShareLinkRecord.model_validate(link) if link else None

    async def ping(self) -> None:
        async with self._session_factory() as db:
            await db.execute(select(1))
