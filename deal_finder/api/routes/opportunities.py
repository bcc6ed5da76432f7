"""Opportunity listing and analysis detail endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from deal_finder.db.models import AnalysisRecord, Opportunity
from deal_finder.db.session import get_db

router = APIRouter()

KINDS = ["rental", "sale"]


def opportunity_to_dict(opp: Opportunity) -> dict:
    return {
        "listing_id": opp.listing_id,
        "neighborhood": opp.neighborhood,
        "property_kind": opp.property_kind,
        "address": opp.address,
        "price": opp.price,
        "estimated_market_value": opp.estimated_market_value,
        "discount_percent": round(opp.discount_percent, 2),
        "potential_savings": round(opp.potential_savings, 2),
        "confidence": opp.confidence,
        "grade": opp.grade,
        "stabilization_probability": opp.stabilization_probability,
        "reasoning": opp.reasoning,
        "status": opp.status,
        "retraction_reason": opp.retraction_reason,
        "published_at": opp.published_at.isoformat(),
        "retracted_at": opp.retracted_at.isoformat() if opp.retracted_at else None,
    }


def analysis_to_dict(record: AnalysisRecord) -> dict:
    return {
        "listing_id": record.listing_id,
        "neighborhood": record.neighborhood,
        "property_kind": record.property_kind,
        "address": record.address,
        "evaluated_at": record.evaluated_at.isoformat(),
        "actual_price": record.actual_price,
        "estimated_market_value": record.estimated_market_value,
        "discount_percent": round(record.discount_percent, 2),
        "potential_savings": round(record.potential_savings, 2),
        "classification": record.classification,
        "confidence": record.confidence,
        "grade": record.grade,
        "match_tier": record.match_tier,
        "sample_size": record.sample_size,
        "threshold": record.threshold,
        "is_undervalued": record.is_undervalued,
        "method": record.method,
        "stabilization": {
            "probability": record.stabilization_probability,
            "evidence": record.stabilization_evidence or [],
        },
        "reasoning": record.reasoning,
        "error": record.error,
    }


@router.get("")
async def list_opportunities(
    neighborhood: Optional[str] = None,
    property_kind: Optional[str] = Query(None, description="rental or sale"),
    status: str = Query("active", description="active, retracted or all"),
    min_discount: Optional[float] = Query(None, description="Minimum discount percent"),
    min_stabilization: Optional[int] = Query(None, description="Minimum stabilization probability"),
    limit: int = Query(50, le=200),
    db: Session = Depends(get_db)
):
    """List published opportunities, best discount first."""
    if property_kind and property_kind not in KINDS:
        raise HTTPException(status_code=400, detail="property_kind must be 'rental' or 'sale'")
    if status not in ["active", "retracted", "all"]:
        raise HTTPException(status_code=400, detail="status must be 'active', 'retracted' or 'all'")
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be between 1 and 200")

    query = select(Opportunity)
    if status != "all":
        query = query.where(Opportunity.status == status)
    if neighborhood:
        query = query.where(Opportunity.neighborhood == neighborhood)
    if property_kind:
        query = query.where(Opportunity.property_kind == property_kind)
    if min_discount is not None:
        query = query.where(Opportunity.discount_percent >= min_discount)
    if min_stabilization is not None:
        query = query.where(Opportunity.stabilization_probability >= min_stabilization)

    query = query.order_by(Opportunity.discount_percent.desc()).limit(limit)
    opportunities = db.execute(query).scalars().all()

    return {
        "opportunities": [opportunity_to_dict(o) for o in opportunities],
        "count": len(opportunities),
        "filters": {
            "neighborhood": neighborhood,
            "property_kind": property_kind,
            "status": status,
            "min_discount": min_discount,
            "min_stabilization": min_stabilization,
        },
    }


@router.get("/{listing_id}")
async def get_opportunity(listing_id: str, db: Session = Depends(get_db)):
    """Get the opportunity record (if any) and latest analysis for a listing."""
    opportunity = db.execute(
        select(Opportunity).where(Opportunity.listing_id == listing_id)
    ).scalar_one_or_none()
    analysis = db.execute(
        select(AnalysisRecord).where(AnalysisRecord.listing_id == listing_id)
    ).scalar_one_or_none()

    if opportunity is None and analysis is None:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found")

    return {
        "listing_id": listing_id,
        "opportunity": opportunity_to_dict(opportunity) if opportunity else None,
        "analysis": analysis_to_dict(analysis) if analysis else None,
    }
