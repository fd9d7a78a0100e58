"""Shared test helper functions for Rentally tests.

These are NOT fixtures - they are regular functions that test modules and
conftest.py import directly.
"""

from __future__ import annotations

import base64
import time
from datetime import date
from decimal import Decimal

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from rentally.domain.models import (
    Billing,
    ChargeModel,
    Customer,
    LineItemSnapshot,
    MoneySnapshot,
    ReservationRequest,
    Resource,
    TimeUnit,
)

OIDC_ISSUER = "https://auth.example.com"
OIDC_AUDIENCE = "rentally-api"
OIDC_JWKS_URL = "https://auth.example.com/.well-known/jwks.json"


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    public_key = private_key.public_key()
    return private_key, public_key


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "operator-123",
    iss: str = OIDC_ISSUER,
    aud: str = OIDC_AUDIENCE,
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_resource(
    resource_id: int = 1,
    *,
    code: str = "MINI-EX",
    name: str = "Mini excavator",
    category: str | None = None,
    unit_price_cents: int = 8500,
    charge_model: ChargeModel = ChargeModel.PER_BOOKING,
    time_unit: TimeUnit = TimeUnit.DAY,
    is_addon: bool = False,
    min_days: int = 1,
) -> Resource:
    return Resource(
        id=resource_id,
        code=code,
        name=name,
        category=category,
        unit_price_cents=unit_price_cents,
        charge_model=charge_model,
        time_unit=time_unit,
        is_addon=is_addon,
        min_days=min_days,
    )


def make_request(
    *,
    resource_id: int = 1,
    start: date = date(2026, 11, 10),
    end: date = date(2026, 11, 12),
    email: str = "ana@example.com",
    name: str = "Ana Costa",
    category: str | None = None,
    total_cents: int = 25500,
    tax_id: str | None = None,
    billing: Billing | None = None,
) -> ReservationRequest:
    return ReservationRequest(
        resource_id=resource_id,
        resource_category=category,
        start_date=start,
        end_date=end,
        customer=Customer(name=name, email=email, tax_id=tax_id),
        billing=billing or Billing(),
        money=MoneySnapshot(
            subtotal_cents=total_cents,
            discount_cents=0,
            total_cents=total_cents,
            discount_percentage=Decimal("0"),
        ),
        line_items=(
            LineItemSnapshot(
                item_key="MINI-EX",
                name="Mini excavator",
                quantity=1,
                unit_price_cents=total_cents,
                charge_model=ChargeModel.PER_BOOKING,
                time_unit=TimeUnit.NONE,
                is_primary=True,
                resource_id=resource_id,
            ),
        ),
    )
