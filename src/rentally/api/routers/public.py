"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from rentally.api.routes import checkout, discounts, ops, webhooks_stripe

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(checkout.router)
router.include_router(discounts.router)
router.include_router(webhooks_stripe.router)
router.include_router(ops.router)
