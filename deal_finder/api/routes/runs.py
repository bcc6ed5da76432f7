"""Run history and cache status endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from deal_finder.cache import CacheStatus
from deal_finder.db.models import ListingCacheEntry, RunMeta
from deal_finder.db.session import get_db

router = APIRouter()


@router.get("/runs")
async def list_runs(
    neighborhood: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """Most recent analysis runs, newest first."""
    query = select(RunMeta)
    if neighborhood:
        query = query.where(RunMeta.neighborhood == neighborhood)
    runs = db.execute(query.order_by(RunMeta.started_at.desc()).limit(limit)).scalars().all()

    return {
        "runs": [
            {
                "run_id": run.run_id,
                "neighborhood": run.neighborhood,
                "property_kind": run.property_kind,
                "status": ("completed" if run.success else "failed") if run.finished_at else "in_progress",
                "started_at": run.started_at.isoformat(),
                "finished_at": run.finished_at.isoformat() if run.finished_at else None,
                "listings_seen": run.listings_seen,
                "listings_new": run.listings_new,
                "listings_analyzed": run.listings_analyzed,
                "opportunities_published": run.opportunities_published,
                "error_message": run.error_message,
            }
            for run in runs
        ],
        "count": len(runs),
    }


@router.get("/cache/{neighborhood}")
async def cache_status(
    neighborhood: str,
    property_kind: Optional[str] = Query(None, description="rental or sale"),
    db: Session = Depends(get_db)
):
    """Count cached listings per status for a neighborhood."""
    query = (
        select(ListingCacheEntry.status, func.count(ListingCacheEntry.id))
        .where(ListingCacheEntry.neighborhood == neighborhood)
        .group_by(ListingCacheEntry.status)
    )
    if property_kind:
        query = query.where(ListingCacheEntry.property_kind == property_kind)

    counts = {status.value: 0 for status in CacheStatus}
    for status, count in db.execute(query).all():
        counts[status] = count

    return {
        "neighborhood": neighborhood,
        "property_kind": property_kind,
        "total": sum(counts.values()),
        "statuses": counts,
    }
