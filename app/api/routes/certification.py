"""GET /certification-levels — prices and evidentiary steps per level."""
from __future__ import annotations

from fastapi import APIRouter

from app.core.policies import all_requirements

router = APIRouter(tags=["certification"])


@router.get("/certification-levels", summary="Certification levels, prices and features")
def list_certification_levels() -> list[dict]:
    return [
        {
            "level": req.level.value,
            "title": req.title,
            "description": req.description,
            "price_cents": req.price_cents,
            "currency": req.currency,
            "features": list(req.features),
            "needs_timestamp": req.needs_timestamp,
            "needs_external_delivery": req.needs_external_delivery,
            "evidence_steps": sorted(req.steps()),
        }
        for req in all_requirements()
    ]
