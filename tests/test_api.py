"""
Tests de los endpoints HTTP de facturas
"""
from uuid import uuid4

import pytest

from invoicing.core.config import settings
from invoicing.modules.invoices.hooks import invoice_hooks


class TestInvoiceEndpoints:

    @pytest.mark.asyncio
    async def test_health_does_not_need_tenant(self, client):
        response = await client.get("/health", headers={settings.TENANT_HEADER: ""})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_tenant_header(self, client):
        response = await client.get("/invoices", headers={settings.TENANT_HEADER: ""})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_tenant_header(self, client):
        response = await client.get("/invoices", headers={settings.TENANT_HEADER: "not-a-uuid"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_then_update(self, client, catalog):
        response = await client.post("/invoices", json={
            "client": 1,
            "items": [{"product": "SKU-CHAIR", "quantity": "2"}],
            "factors": [
                {"type": "enhancer", "unit": "percent", "amount": "10"},
                {"type": "reducer", "unit": "price", "amount": "15"},
            ]
        })
        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["created"] is True
        invoice = body["invoice"]
        assert invoice["number"] == 1
        assert invoice["client"] == {"kind": "person", "id": str(catalog.ana.id)}
        assert float(invoice["subtotal"]) == 200
        assert float(invoice["total"]) == 205
        assert invoice["is_expired"] is False

        item_id = invoice["items"][0]["id"]
        response = await client.post("/invoices", json={
            "id": invoice["id"],
            "note": "actualizada",
            "items": [{"id": item_id, "quantity": "3"}],
        })
        assert response.status_code == 200
        body = response.json()
        assert body["created"] is False
        assert body["invoice"]["number"] == 1
        assert body["invoice"]["note"] == "actualizada"
        assert float(body["invoice"]["subtotal"]) == 300

    @pytest.mark.asyncio
    async def test_get_invoice_details(self, client, catalog):
        created = (await client.post("/invoices", json={
            "client": {"kind": "organization", "identifier": 10},
            "items": [{"product": {"kind": "service", "identifier": "RENT"}}],
        })).json()["invoice"]

        response = await client.get(f"/invoices/{created['id']}")
        assert response.status_code == 200
        invoice = response.json()["invoice"]
        assert invoice["client"]["kind"] == "organization"
        assert invoice["items"][0]["product"] == {"kind": "service", "id": str(catalog.rental.id)}

    @pytest.mark.asyncio
    async def test_list_with_filters(self, client, catalog):
        for client_ref in (1, 2, {"kind": "organization", "identifier": 10}):
            await client.post("/invoices", json={"client": client_ref})

        response = await client.get("/invoices", params={"sort": "number", "page": 0, "perPage": 2})
        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 3
        assert [invoice["number"] for invoice in body["data"]] == [1, 2]

        response = await client.get("/invoices", params={"client": "acme"})
        assert [invoice["number"] for invoice in response.json()["data"]] == [3]

    @pytest.mark.asyncio
    async def test_next_number(self, client, catalog):
        assert (await client.get("/invoices/new/number")).json() == {"ok": True, "number": 1}
        await client.post("/invoices", json={"client": 1})
        assert (await client.get("/invoices/new/number")).json()["number"] == 2

    @pytest.mark.asyncio
    async def test_delete(self, client, catalog):
        created = (await client.post("/invoices", json={"client": 1})).json()["invoice"]

        response = await client.delete(f"/invoices/{created['id']}")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        response = await client.get(f"/invoices/{created['id']}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, client, catalog):
        created = (await client.post("/invoices", json={"client": 1})).json()["invoice"]

        response = await client.get(
            f"/invoices/{created['id']}",
            headers={settings.TENANT_HEADER: str(uuid4())}
        )
        assert response.status_code == 404


class TestErrorMapping:

    @pytest.mark.asyncio
    async def test_not_found(self, client, catalog):
        response = await client.get(f"/invoices/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_unknown_product_is_not_found(self, client, catalog):
        response = await client.post("/invoices", json={"client": 1, "items": [{"product": "NOPE"}]})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_validation_error(self, client, catalog):
        response = await client.post("/invoices", json={"items": []})
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_schema_rejects_bad_discount(self, client, catalog):
        response = await client.post("/invoices", json={
            "client": 1,
            "items": [{"product": "SKU-CHAIR", "discount_percent": "150"}]
        })
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_schema_rejects_price_beyond_cents(self, client, catalog):
        response = await client.post("/invoices", json={
            "client": 1,
            "items": [{"product": "SKU-CHAIR", "unit_price": "10.005"}]
        })
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_schema_rejects_malformed_factor(self, client, catalog):
        response = await client.post("/invoices", json={
            "client": 1,
            "factors": [{"type": "bonus", "unit": "percent", "amount": "5"}]
        })
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_conflict(self, client, catalog):
        await client.post("/invoices", json={"client": 1, "number": 5})
        response = await client.post("/invoices", json={"client": 2, "number": 5})
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    @pytest.mark.asyncio
    async def test_dependency_error(self, client, catalog):
        async def broken(context):
            raise RuntimeError("plugin crashed")

        invoice_hooks.register("invoice.preSave", broken)
        response = await client.post("/invoices", json={"client": 1})

        assert response.status_code == 502
        assert response.json()["error"] == "dependency_error"
        assert (await client.get("/invoices")).json()["total"] == 0
