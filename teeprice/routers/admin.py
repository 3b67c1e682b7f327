# teeprice/routers/admin.py
"""
Admin pricing maintenance routes.
Authentication is handled in front of this service.
"""

from fastapi import APIRouter, Depends

from teeprice import schemas
from teeprice.bulk import BulkFilters, BulkRuleService
from teeprice.dedupe import DedupeService, run_dedupe
from teeprice.deps import get_bulk_rule_service, get_dedupe_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/pricing/dedupe", response_model=schemas.DedupeOut)
def dedupe_pricing(
    req: schemas.DedupeRequest,
    service: DedupeService = Depends(get_dedupe_service),
):
    removed = run_dedupe(service, req.course_id, req.type, req.strategy)
    return schemas.DedupeOut(
        success=True,
        removed_count=removed,
        message=f"Successfully removed {removed} duplicate items",
    )


@router.post("/pricing/bulk-change", response_model=schemas.BulkRulesOut)
def bulk_price_change(
    req: schemas.BulkPriceChangeRequest,
    service: BulkRuleService = Depends(get_bulk_rule_service),
):
    """Raise or lower every selected fixed/delta rule by a percentage or an amount."""
    filters = BulkFilters(
        season_id=req.filters.season_id,
        time_band_id=req.filters.time_band_id,
        dow=req.filters.dow,
    )
    changed = service.apply_bulk_price_change(req.course_id, filters, req.change.type, req.change.value)
    return schemas.BulkRulesOut.from_rules(changed)


@router.post("/pricing/duplicate-rules", response_model=schemas.BulkRulesOut)
def duplicate_rules(
    req: schemas.DuplicateRulesRequest,
    service: BulkRuleService = Depends(get_bulk_rule_service),
):
    copies = service.duplicate_rules_for_date_range(
        req.course_id,
        req.source_start_date,
        req.source_end_date,
        req.target_start_date,
        req.target_end_date,
    )
    return schemas.BulkRulesOut.from_rules(copies)
