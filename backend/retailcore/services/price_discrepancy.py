# Overview: Catalog vs. sold price comparison for sale audit records.
from __future__ import annotations

from ..models import PriceDiscrepancy
from ..time_utils import utcnow

REASON_PRICE_OVERRIDE = "PRICE_OVERRIDE"


def detect(variant_id: int, catalog_price_cents: int | None, sold_price_cents: int | None,
           *, reason: str = REASON_PRICE_OVERRIDE) -> PriceDiscrepancy | None:
    """
    Return an (unsaved) PriceDiscrepancy when the sold price differs from the
    catalog price, otherwise None.

    Never raises and never blocks a sale; a missing price on either side is
    treated as "nothing to compare".
    """
    if catalog_price_cents is None or sold_price_cents is None:
        return None
    if catalog_price_cents == sold_price_cents:
        return None
    return PriceDiscrepancy(
        variant_id=variant_id,
        catalog_price_cents=catalog_price_cents,
        sold_price_cents=sold_price_cents,
        difference_cents=sold_price_cents - catalog_price_cents,
        reason=reason,
        created_at=utcnow(),
    )
