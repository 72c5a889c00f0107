"""
Repository for content drafts produced during onboarding.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from db.models.content_draft import ContentDraft, ContentDraftStatus


class ContentDraftRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_drafts(
        self,
        *,
        brand_id: str,
        run_id: uuid.UUID,
        plan_items: Sequence[dict[str, Any]],
    ) -> list[ContentDraft]:
        drafts = [
            ContentDraft(
                brand_id=brand_id,
                run_id=run_id,
                position=position,
                platform=str(item.get("platform", "generic")),
                plan_item=dict(item),
                hashtags=[],
                retry_count=0,
                status=ContentDraftStatus.GENERATING,
            )
            for position, item in enumerate(plan_items)
        ]
        self._session.add_all(drafts)
        self._session.flush()
        return drafts

    def get_draft(self, draft_id: uuid.UUID) -> ContentDraft | None:
        return self._session.get(ContentDraft, draft_id, populate_existing=True)

    def list_drafts(
        self,
        *,
        run_id: uuid.UUID,
        brand_id: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> list[ContentDraft]:
        stmt = select(ContentDraft).where(ContentDraft.run_id == run_id)
        if brand_id is not None:
            stmt = stmt.where(ContentDraft.brand_id == brand_id)
        if statuses is not None:
            stmt = stmt.where(ContentDraft.status.in_(list(statuses)))
        stmt = stmt.order_by(ContentDraft.position.asc())
        return list(self._session.scalars(stmt).all())

    def count_terminal(self, *, run_id: uuid.UUID) -> int:
        stmt = select(func.count(ContentDraft.id)).where(
            ContentDraft.run_id == run_id,
            ContentDraft.status.in_(list(ContentDraftStatus.TERMINAL)),
        )
        return int(self._session.scalar(stmt) or 0)

    def update_draft(
        self,
        *,
        draft_id: uuid.UUID,
        expected_status: str,
        expected_retry_count: int,
        **values: Any,
    ) -> bool:
        """
        Conditionally update one draft; False when it moved on concurrently.
        """

        stmt = (
            update(ContentDraft)
            .where(
                ContentDraft.id == draft_id,
                ContentDraft.status == expected_status,
                ContentDraft.retry_count == expected_retry_count,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1
