"""Company discount lookup by business tax id."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from rentally.domain.discounts import normalize_tax_id
from rentally.infra.db import txn
from rentally.infra.repositories.company_discounts_repository import get_active_discount

router = APIRouter(prefix="/discounts", tags=["discounts"])

_CACHE_HEADERS = {"Cache-Control": "public, max-age=300, stale-while-revalidate=60"}


@router.get("/{tax_id}")
def check_discount(tax_id: str) -> JSONResponse:
    """Return the active discount for a tax id; 0 when none applies."""
    normalized = normalize_tax_id(tax_id)
    if normalized is None:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "invalid tax id"},
            headers={"Cache-Control": "no-store"},
        )

    with txn() as cur:
        found = get_active_discount(cur, tax_id=normalized)

    if found is None:
        return JSONResponse(
            status_code=200,
            content={"discount_percentage": "0"},
            headers=_CACHE_HEADERS,
        )

    percentage, company_name = found
    return JSONResponse(
        status_code=200,
        content={"discount_percentage": str(percentage), "company_name": company_name},
        headers=_CACHE_HEADERS,
    )
