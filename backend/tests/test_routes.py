# Overview: HTTP API tests: status codes and error payloads for every route group.

from retailcore.errors import LockTimeout

from conftest import BRANCH_A, BRANCH_B, HEADERS, JACKET, SHIRT, TENANT, UNLISTED


def _sale_body(*lines, **extra):
    body = {
        "items": [{"variant_id": v, "quantity": q, "unit_price_cents": p} for v, q, p in lines],
        "payment_method": "CASH",
    }
    body.update(extra)
    return body


class TestIdentity:
    def test_missing_tenant_is_401(self, client):
        response = client.get(f"/api/stock/{SHIRT}/{BRANCH_A}")
        assert response.status_code == 401
        assert response.get_json()["code"] == "unauthorized"

    def test_malformed_header_is_400(self, client):
        response = client.get(f"/api/stock/{SHIRT}/{BRANCH_A}", headers={"X-Tenant-Id": "abc"})
        assert response.status_code == 400


class TestHealth:
    def test_health_ok(self, client):
        response = client.get("/api/health")
        data = response.get_json()
        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["checks"]["store"]["details"]["dialect"] == "sqlite"


class TestStockRoutes:
    def test_unknown_key_reads_zero(self, client):
        response = client.get(f"/api/stock/{SHIRT}/{BRANCH_B}", headers=HEADERS)
        assert response.status_code == 200
        assert response.get_json()["quantity"] == 0

    def test_adjustment_and_history(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)

        response = client.post("/api/stock/adjustment", headers=HEADERS, json={
            "variant_id": SHIRT, "branch_id": BRANCH_A, "delta": -3, "reason": "DAMAGED",
        })
        assert response.status_code == 201
        assert response.get_json()["new_quantity"] == 7

        history = client.get(f"/api/stock/{SHIRT}/{BRANCH_A}/history?limit=1", headers=HEADERS).get_json()
        assert len(history["adjustments"]) == 1
        assert history["adjustments"][0]["actor_id"] == 7

    def test_adjustment_errors(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 2)

        missing = client.post("/api/stock/adjustment", headers=HEADERS, json={"variant_id": SHIRT})
        bad_reason = client.post("/api/stock/adjustment", headers=HEADERS, json={
            "variant_id": SHIRT, "branch_id": BRANCH_A, "delta": 1, "reason": "SALE",
        })
        negative = client.post("/api/stock/adjustment", headers=HEADERS, json={
            "variant_id": SHIRT, "branch_id": BRANCH_A, "delta": -5, "reason": "LOST",
        })

        assert missing.status_code == 400
        assert bad_reason.status_code == 400
        assert negative.status_code == 409
        assert negative.get_json()["details"]["on_hand"] == 2

    def test_alert_threshold(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 2)

        response = client.post("/api/stock/alert", headers=HEADERS, json={
            "variant_id": SHIRT, "branch_id": BRANCH_A, "min_stock": 5,
        })

        assert response.status_code == 200
        assert response.get_json()["is_low"] is True

    def test_tenant_adjustment_log(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        sql_core.ledger.credit(TENANT, JACKET, BRANCH_B, 3)
        sql_core.ledger.adjust(TENANT, SHIRT, BRANCH_A, -1, "LOST")

        response = client.get("/api/stock/adjustments?limit=2", headers=HEADERS)
        data = response.get_json()

        assert response.status_code == 200
        assert [a["delta"] for a in data["adjustments"]] == [-1, 3]
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

        lost = client.get("/api/stock/adjustments?reason=LOST", headers=HEADERS).get_json()
        assert [a["variant_id"] for a in lost["adjustments"]] == [SHIRT]
        at_b = client.get(f"/api/stock/adjustments?branch_id={BRANCH_B}", headers=HEADERS).get_json()
        assert at_b["pagination"]["total"] == 1

        bad = client.get("/api/stock/adjustments?start_date=soon", headers=HEADERS)
        assert bad.status_code == 400

    def test_low_stock_alerts(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 2)
        sql_core.ledger.credit(TENANT, JACKET, BRANCH_A, 8)
        sql_core.ledger.set_min_stock(TENANT, SHIRT, BRANCH_A, 5)
        sql_core.ledger.set_min_stock(TENANT, JACKET, BRANCH_A, 5)

        response = client.get("/api/stock/alerts/low", headers=HEADERS)

        assert response.status_code == 200
        items = response.get_json()["items"]
        assert [(i["variant_id"], i["quantity"], i["min_stock"]) for i in items] == [(SHIRT, 2, 5)]
        other = client.get(f"/api/stock/alerts/low?branch_id={BRANCH_B}", headers=HEADERS).get_json()
        assert other["items"] == []


class TestTransactionRoutes:
    def test_create_get_cancel(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)

        created = client.post("/api/transactions", headers=HEADERS, json=_sale_body((SHIRT, 2, 1000)))
        assert created.status_code == 201
        txn = created.get_json()
        assert txn["branch_id"] == BRANCH_A
        assert txn["cashier_id"] == 7

        fetched = client.get(f"/api/transactions/{txn['id']}", headers=HEADERS)
        assert fetched.status_code == 200
        assert fetched.get_json()["transaction_number"] == txn["transaction_number"]

        cancelled = client.post(f"/api/transactions/{txn['id']}/cancel", headers=HEADERS)
        assert cancelled.status_code == 200
        assert cancelled.get_json()["status"] == "CANCELLED"

        again = client.post(f"/api/transactions/{txn['id']}/cancel", headers=HEADERS)
        assert again.status_code == 409

    def test_insufficient_stock_is_409(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 1)

        response = client.post("/api/transactions", headers=HEADERS, json=_sale_body((SHIRT, 2, 1000)))

        assert response.status_code == 409
        assert response.get_json()["code"] == "insufficient_stock"
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 1

    def test_validation_and_not_found(self, client, sql_core):
        empty = client.post("/api/transactions", headers=HEADERS, json=_sale_body())
        bad_method = client.post(
            "/api/transactions", headers=HEADERS, json=_sale_body((SHIRT, 1, 1000), payment_method="CHEQUE")
        )
        unknown = client.post("/api/transactions", headers=HEADERS, json=_sale_body((UNLISTED, 1, 1000)))
        missing = client.get("/api/transactions/999", headers=HEADERS)

        assert empty.status_code == 400
        assert bad_method.status_code == 400
        assert unknown.status_code == 404
        assert missing.status_code == 404

    def test_other_tenant_cannot_read(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        txn = client.post("/api/transactions", headers=HEADERS, json=_sale_body((SHIRT, 1, 1000))).get_json()

        response = client.get(f"/api/transactions/{txn['id']}", headers={"X-Tenant-Id": "2"})

        assert response.status_code == 404

    def test_list_transactions(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        first = client.post("/api/transactions", headers=HEADERS, json=_sale_body((SHIRT, 1, 1000))).get_json()
        second = client.post(
            "/api/transactions", headers=HEADERS, json=_sale_body((SHIRT, 1, 1000), payment_method="DEBIT")
        ).get_json()
        client.post(f"/api/transactions/{first['id']}/cancel", headers=HEADERS)

        listed = client.get("/api/transactions", headers=HEADERS).get_json()
        assert [t["id"] for t in listed["transactions"]] == [second["id"], first["id"]]
        assert "items" not in listed["transactions"][0]

        debit = client.get("/api/transactions?payment_method=DEBIT", headers=HEADERS).get_json()
        assert [t["id"] for t in debit["transactions"]] == [second["id"]]
        cancelled = client.get("/api/transactions?status=CANCELLED", headers=HEADERS).get_json()
        assert [t["id"] for t in cancelled["transactions"]] == [first["id"]]
        elsewhere = client.get(f"/api/transactions?branch_id={BRANCH_B}", headers=HEADERS).get_json()
        assert elsewhere["transactions"] == []
        future = client.get("/api/transactions?start_date=2999-01-01", headers=HEADERS).get_json()
        assert future["transactions"] == []

        bad = client.get("/api/transactions?status=VOID", headers=HEADERS)
        assert bad.status_code == 400


class TestTransferRoutes:
    def test_transfer_flow(self, client, sql_core):
        sql_core.ledger.credit(TENANT, JACKET, BRANCH_A, 5)

        created = client.post("/api/transfers", headers=HEADERS, json={
            "variant_id": JACKET, "from_branch_id": BRANCH_A, "to_branch_id": BRANCH_B, "quantity": 3,
        })
        assert created.status_code == 201
        transfer_id = created.get_json()["id"]

        listed = client.get("/api/transfers?status=PENDING", headers=HEADERS).get_json()
        assert [t["id"] for t in listed["transfers"]] == [transfer_id]

        approved = client.post(f"/api/transfers/{transfer_id}/approve", headers=HEADERS)
        assert approved.status_code == 200
        assert approved.get_json()["status"] == "APPROVED"
        assert sql_core.ledger.read(TENANT, JACKET, BRANCH_B) == 3

        rejected = client.post(f"/api/transfers/{transfer_id}/reject", headers=HEADERS, json={})
        assert rejected.status_code == 409

    def test_same_branch_and_short_stock(self, client, sql_core):
        sql_core.ledger.credit(TENANT, JACKET, BRANCH_A, 1)

        same = client.post("/api/transfers", headers=HEADERS, json={
            "variant_id": JACKET, "from_branch_id": BRANCH_A, "to_branch_id": BRANCH_A, "quantity": 1,
        })
        assert same.status_code == 409

        created = client.post("/api/transfers", headers=HEADERS, json={
            "variant_id": JACKET, "from_branch_id": BRANCH_A, "to_branch_id": BRANCH_B, "quantity": 4,
        }).get_json()
        short = client.post(f"/api/transfers/{created['id']}/approve", headers=HEADERS)

        assert short.status_code == 409
        status = client.get(f"/api/transfers/{created['id']}", headers=HEADERS).get_json()["status"]
        assert status == "PENDING"

    def test_stats_summary(self, client, sql_core):
        sql_core.ledger.credit(TENANT, JACKET, BRANCH_A, 5)
        for quantity in (2, 1):
            client.post("/api/transfers", headers=HEADERS, json={
                "variant_id": JACKET, "from_branch_id": BRANCH_A, "to_branch_id": BRANCH_B, "quantity": quantity,
            })
        first = client.get("/api/transfers", headers=HEADERS).get_json()["transfers"][-1]
        client.post(f"/api/transfers/{first['id']}/approve", headers=HEADERS)

        response = client.get("/api/transfers/stats/summary", headers=HEADERS)
        stats = response.get_json()

        assert response.status_code == 200
        assert stats["total"] == 2
        assert stats["approved"] == 1
        assert stats["pending"] == 1
        assert stats["total_quantity"] == 3
        assert stats["moved_quantity"] == 2

        elsewhere = client.get("/api/transfers/stats/summary?branch_id=9", headers=HEADERS).get_json()
        assert elsewhere["total"] == 0

    def test_contention_on_request_is_503(self, client, sql_core, monkeypatch):
        def _busy(*args, **kwargs):
            raise LockTimeout("document sequence is locked")

        monkeypatch.setattr(sql_core.transfers, "request_transfer", _busy)

        response = client.post("/api/transfers", headers=HEADERS, json={
            "variant_id": JACKET, "from_branch_id": BRANCH_A, "to_branch_id": BRANCH_B, "quantity": 1,
        })

        assert response.status_code == 503
        assert response.get_json()["code"] == "busy"


class TestReturnRoutes:
    def test_return_flow(self, client, sql_core):
        sql_core.ledger.credit(TENANT, SHIRT, BRANCH_A, 10)
        txn = client.post("/api/transactions", headers=HEADERS, json=_sale_body((SHIRT, 4, 1000))).get_json()

        created = client.post("/api/returns", headers=HEADERS, json={
            "transaction_id": txn["id"],
            "items": [{"variant_id": SHIRT, "quantity": 2}],
            "reason": "DEFECTIVE",
        })
        assert created.status_code == 201
        ret = created.get_json()
        assert ret["status"] == "PENDING"
        assert ret["refund_amount_cents"] == 2000

        approved = client.post(f"/api/returns/{ret['id']}/approve", headers=HEADERS)
        assert approved.status_code == 200
        assert approved.get_json()["refund"]["amount_cents"] == 2000
        assert sql_core.ledger.read(TENANT, SHIRT, BRANCH_A) == 8

        over = client.post("/api/returns", headers=HEADERS, json={
            "transaction_id": txn["id"],
            "items": [{"variant_id": SHIRT, "quantity": 3}],
            "reason": "DEFECTIVE",
        })
        assert over.status_code == 400
        assert over.get_json()["details"]["returnable"] == 2

        stats = client.get("/api/returns/stats", headers=HEADERS).get_json()
        assert stats["approved"] == 1

        listed = client.get(f"/api/returns?transaction_id={txn['id']}", headers=HEADERS).get_json()
        assert len(listed["returns"]) == 1

    def test_return_against_missing_transaction(self, client):
        response = client.post("/api/returns", headers=HEADERS, json={
            "transaction_id": 12345,
            "items": [{"variant_id": SHIRT, "quantity": 1}],
            "reason": "OTHER",
        })
        assert response.status_code == 404
