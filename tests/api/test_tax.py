"""
Tests for tax API endpoints.
"""

from decimal import Decimal


class TestGstEndpoints:

    def test_calculate_intrastate(self, client):
        response = client.post("/tax/gst/calculate", json={
            "amount": "1000", "gst_rate": "18",
        })
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["cgst"]) == Decimal("90.00")
        assert Decimal(data["sgst"]) == Decimal("90.00")
        assert Decimal(data["total_amount"]) == Decimal("1180.00")
        assert data["is_interstate"] is False

    def test_missing_rate_returns_400(self, client):
        response = client.post("/tax/gst/calculate", json={"amount": "1000"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "MISSING_RATE"

    def test_calculate_with_tax_code(self, client):
        code = client.post("/tax/codes", json={
            "code": "GST5", "name": "GST 5%", "rate": "5",
        })
        assert code.status_code == 201

        response = client.post("/tax/gst/calculate", json={
            "amount": "200", "tax_code_id": code.json()["id"],
            "is_interstate": True,
        })
        assert Decimal(response.json()["igst"]) == Decimal("10.00")

    def test_tax_code_from_other_tenant_not_found(self, client):
        code_id = client.post("/tax/codes", json={
            "code": "GST5", "name": "GST 5%", "rate": "5",
        }).json()["id"]

        response = client.post(
            "/tax/gst/calculate",
            json={"amount": "200", "tax_code_id": code_id},
            headers={"X-Tenant-ID": "tenant-b"},
        )
        assert response.status_code == 404

    def test_invoice_totals(self, client):
        response = client.post("/tax/gst/invoice", json={
            "lines": [
                {"quantity": "2", "unit_price": "500", "gst_rate": "18"},
                {"unit_price": "100", "gst_rate": "0"},
            ],
        })
        assert response.status_code == 200
        data = response.json()
        assert len(data["lines"]) == 2
        assert Decimal(data["totals"]["subtotal"]) == Decimal("1100.00")
        assert Decimal(data["totals"]["total_tax"]) == Decimal("180.00")
        assert Decimal(data["totals"]["total_amount"]) == Decimal("1280.00")


class TestTdsEndpoints:

    def test_calculate_tds(self, client):
        response = client.post("/tax/tds/calculate", json={
            "amount": "50000", "section": "194J",
        })
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["tds_amount"]) == Decimal("5000.00")
        assert Decimal(data["net_amount"]) == Decimal("45000.00")
        assert data["section_description"] == "Professional/Technical fees"

    def test_unknown_section_returns_400(self, client):
        response = client.post("/tax/tds/calculate", json={
            "amount": "50000", "section": "100A",
        })
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_SECTION"

    def test_list_sections(self, client):
        sections = client.get("/tax/tds/sections").json()
        by_section = {s["section"]: s for s in sections}
        assert Decimal(by_section["194C"]["rate_company"]) == Decimal("2")
        assert by_section["194J"]["rate_company"] is None
