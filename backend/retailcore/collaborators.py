# Overview: Shipped implementations of the catalog and policy ports.
from __future__ import annotations

import threading

from .ports import CatalogVariant, ReturnPolicy


class DictCatalog:
    """
    Catalog backed by a plain mapping of (tenant_id, variant_id) -> price_cents.

    The real catalog lives in an external service; this one is what the CLI,
    local development and the test-suite use.
    """

    def __init__(self, prices: dict | None = None):
        self._lock = threading.Lock()
        self._prices: dict[tuple[int, int], int] = dict(prices or {})

    def add_variant(self, tenant_id: int, variant_id: int, price_cents: int) -> None:
        with self._lock:
            self._prices[(tenant_id, variant_id)] = price_cents

    def get_variant(self, tenant_id: int, variant_id: int) -> CatalogVariant | None:
        with self._lock:
            price = self._prices.get((tenant_id, variant_id))
        if price is None:
            return None
        return CatalogVariant(variant_id=variant_id, price_cents=price)


class StaticPolicyProvider:
    """Same return policy for every tenant unless overridden per tenant."""

    def __init__(self, default: ReturnPolicy | None = None, overrides: dict | None = None):
        self.default = default or ReturnPolicy()
        self.overrides: dict[int, ReturnPolicy] = dict(overrides or {})

    @classmethod
    def from_config(cls, config) -> "StaticPolicyProvider":
        return cls(ReturnPolicy(
            returns_enabled=bool(config.get("RETURNS_ENABLED", True)),
            return_requires_approval=bool(config.get("RETURN_REQUIRES_APPROVAL", True)),
            return_deadline_days=int(config.get("RETURN_DEADLINE_DAYS", 7)),
        ))

    def set_policy(self, tenant_id: int, policy: ReturnPolicy) -> None:
        self.overrides[tenant_id] = policy

    def return_policy(self, tenant_id: int) -> ReturnPolicy:
        return self.overrides.get(tenant_id, self.default)
