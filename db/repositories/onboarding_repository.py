"""
Repository for brand snapshots and onboarding run state transitions.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from db.models.brand_snapshot import BrandSnapshot
from db.models.onboarding_run import OnboardingRun, OnboardingStage


class OnboardingRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def create_snapshot(
        self,
        *,
        brand_id: str,
        extraction_result_id: uuid.UUID,
        payload: dict[str, Any],
        created_at: datetime,
    ) -> BrandSnapshot:
        snapshot = BrandSnapshot(
            brand_id=brand_id,
            extraction_result_id=extraction_result_id,
            payload=payload,
            created_at=created_at,
            updated_at=created_at,
        )
        self._session.add(snapshot)
        self._session.flush()
        return snapshot

    def get_snapshot(self, snapshot_id: uuid.UUID) -> BrandSnapshot | None:
        return self._session.get(BrandSnapshot, snapshot_id)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def create_run(
        self,
        *,
        brand_id: str,
        snapshot_id: uuid.UUID,
        started_at: datetime,
    ) -> OnboardingRun:
        run = OnboardingRun(
            brand_id=brand_id,
            snapshot_id=snapshot_id,
            stage=OnboardingStage.SNAPSHOT_CREATED,
            started_at=started_at,
            created_at=started_at,
            updated_at=started_at,
        )
        self._session.add(run)
        self._session.flush()
        return run

    def get_run(
        self,
        run_id: uuid.UUID,
        *,
        brand_id: str | None = None,
    ) -> OnboardingRun | None:
        run = self._session.get(OnboardingRun, run_id, populate_existing=True)
        if run is None:
            return None
        if brand_id is not None and run.brand_id != brand_id:
            return None
        return run

    def find_run_for_extraction(
        self,
        *,
        brand_id: str,
        extraction_result_id: uuid.UUID,
    ) -> OnboardingRun | None:
        stmt = (
            select(OnboardingRun)
            .join(BrandSnapshot, BrandSnapshot.id == OnboardingRun.snapshot_id)
            .where(
                OnboardingRun.brand_id == brand_id,
                BrandSnapshot.extraction_result_id == extraction_result_id,
            )
            .order_by(OnboardingRun.started_at.desc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def list_active_runs(self, *, brand_id: str) -> list[OnboardingRun]:
        stmt = (
            select(OnboardingRun)
            .where(
                OnboardingRun.brand_id == brand_id,
                OnboardingRun.stage.not_in(list(OnboardingStage.TERMINAL)),
            )
            .order_by(OnboardingRun.started_at.asc())
        )
        return list(self._session.scalars(stmt).all())

    def list_stalled_runs(self, *, updated_before: datetime, limit: int = 50) -> list[OnboardingRun]:
        stmt = (
            select(OnboardingRun)
            .where(
                OnboardingRun.stage.not_in(list(OnboardingStage.TERMINAL)),
                OnboardingRun.updated_at < updated_before,
            )
            .order_by(OnboardingRun.updated_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def transition(
        self,
        *,
        run_id: uuid.UUID,
        from_stages: Iterable[str],
        to_stage: str,
        now: datetime,
        **values: Any,
    ) -> bool:
        """
        Move a current (not superseded) run between stages.

        Returns False when the run was superseded or already moved on.
        """

        if to_stage in OnboardingStage.TERMINAL:
            values.setdefault("completed_at", now)
        stmt = (
            update(OnboardingRun)
            .where(
                OnboardingRun.id == run_id,
                OnboardingRun.superseded_by.is_(None),
                OnboardingRun.stage.in_(list(from_stages)),
            )
            .values(stage=to_stage, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def touch(self, *, run_id: uuid.UUID, now: datetime, **values: Any) -> bool:
        """
        Update bookkeeping fields of a current run without changing its stage.
        """

        stmt = (
            update(OnboardingRun)
            .where(
                OnboardingRun.id == run_id,
                OnboardingRun.superseded_by.is_(None),
                OnboardingRun.stage.not_in(list(OnboardingStage.TERMINAL)),
            )
            .values(updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def supersede(
        self,
        *,
        run_id: uuid.UUID,
        superseded_by: uuid.UUID,
        reason: str,
        now: datetime,
    ) -> bool:
        stmt = (
            update(OnboardingRun)
            .where(
                OnboardingRun.id == run_id,
                OnboardingRun.stage.not_in(list(OnboardingStage.TERMINAL)),
            )
            .values(
                stage=OnboardingStage.FAILED,
                superseded_by=superseded_by,
                error=reason,
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1
