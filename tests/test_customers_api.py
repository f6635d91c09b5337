import pytest

from conftest import auth


class TestCustomers:
    def test_sales_cannot_list_customers(self, client, seed):
        resp = client.get("/api/customers", headers=auth("sales"))
        assert resp.status_code == 403

    @pytest.mark.parametrize("actor", ["admin", "manager_a"])
    def test_list_and_search(self, client, seed, actor):
        page = client.get("/api/customers", params={"search": "Minh"}, headers=auth(actor)).json()
        assert page["pagination"]["total"] == 1
        assert page["data"][0]["company_name"] == "Công ty Minh Phát"

    def test_sales_creates_customer(self, client, seed):
        resp = client.post(
            "/api/customers",
            json={"company_name": "  Nhà hàng Sen  ", "phone": "", "customer_type": "Cá nhân"},
            headers=auth("sales"),
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["company_name"] == "Nhà hàng Sen"
        assert resp.json()["phone"] is None

    def test_technician_cannot_create_customer(self, client, seed):
        resp = client.post("/api/customers", json={"company_name": "X"}, headers=auth("tech_a1"))
        assert resp.status_code == 403

    def test_company_name_required(self, client, seed):
        resp = client.post("/api/customers", json={"company_name": " "}, headers=auth("admin"))
        assert resp.status_code == 400

    def test_update(self, client, seed):
        resp = client.put(
            f"/api/customers/{seed.customer_id}",
            json={"company_name": "Công ty Minh Phát (mới)", "address": "5 Hai Bà Trưng"},
            headers=auth("manager_a"),
        )
        assert resp.status_code == 200
        assert resp.json()["address"] == "5 Hai Bà Trưng"


class TestContacts:
    def _create(self, client, seed, name, primary, actor="sales"):
        resp = client.post(
            "/api/contacts",
            json={"customer_id": str(seed.customer_id), "name": name, "is_primary": primary},
            headers=auth(actor),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    def test_single_primary_per_customer(self, client, seed):
        first = self._create(client, seed, "Anh Tuấn", True)
        second = self._create(client, seed, "Chị Hoa", True)
        data = client.get("/api/contacts", params={"customer_id": str(seed.customer_id)}, headers=auth("sales")).json()["data"]
        primaries = [c["id"] for c in data if c["is_primary"]]
        assert primaries == [second["id"]]
        assert data[0]["id"] == second["id"]

        client.put(f"/api/contacts/{first['id']}", json={"is_primary": True}, headers=auth("manager_a"))
        data = client.get("/api/contacts", params={"customer_id": str(seed.customer_id)}, headers=auth("sales")).json()["data"]
        assert [c["id"] for c in data if c["is_primary"]] == [first["id"]]

    def test_sales_cannot_delete(self, client, seed):
        contact = self._create(client, seed, "Anh Tuấn", False)
        assert client.delete(f"/api/contacts/{contact['id']}", headers=auth("sales")).status_code == 403
        assert client.delete(f"/api/contacts/{contact['id']}", headers=auth("manager_a")).status_code == 200

    def test_technician_cannot_view(self, client, seed):
        resp = client.get("/api/contacts", params={"customer_id": str(seed.customer_id)}, headers=auth("tech_a1"))
        assert resp.status_code == 403
