from conftest import auth


def project_body(seed, **overrides):
    body = {
        "customer_id": str(seed.customer_id),
        "name": "Tòa nhà Minh Phát",
        "address": "12 Lê Lợi, Q1",
        "items": [
            {"model_name": "Daikin FTKA25", "quantity": 2,
             "warranty_start_date": "2026-01-01", "warranty_end_date": "2027-01-01",
             "serial_numbers": ["SN-001", " ", "SN-002"]},
        ],
        "personnel_ids": ["tech_a1"],
    }
    body.update(overrides)
    return body


class TestProjects:
    def test_create_with_items_and_personnel(self, client, seed):
        resp = client.post("/api/projects", json=project_body(seed), headers=auth("sales"))
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert [s["serial_number"] for s in body["items"][0]["serials"]] == ["SN-001", "SN-002"]
        assert [p["user_id"] for p in body["personnel"]] == ["tech_a1"]

    def test_technician_views_but_cannot_create(self, client, seed):
        assert client.post("/api/projects", json=project_body(seed), headers=auth("tech_a1")).status_code == 403
        client.post("/api/projects", json=project_body(seed), headers=auth("admin"))
        data = client.get("/api/projects", params={"customer_id": str(seed.customer_id)},
                          headers=auth("tech_a1")).json()["data"]
        assert len(data) == 1

    def test_patch_replaces_collections(self, client, seed):
        project = client.post("/api/projects", json=project_body(seed), headers=auth("admin")).json()
        resp = client.patch(
            f"/api/projects/{project['id']}",
            json={"items": [{"model_name": "Panasonic XU9", "serial_numbers": ["P-1"]}],
                  "personnel_ids": ["tech_a2", "tech_a1"]},
            headers=auth("manager_a"),
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert [i["model_name"] for i in body["items"]] == ["Panasonic XU9"]
        assert sorted(p["user_id"] for p in body["personnel"]) == ["tech_a1", "tech_a2"]
        assert body["updated_at"] is not None

    def test_unknown_personnel_leaves_project_untouched(self, client, seed):
        project = client.post("/api/projects", json=project_body(seed), headers=auth("admin")).json()
        resp = client.patch(
            f"/api/projects/{project['id']}",
            json={"name": "Đổi tên", "personnel_ids": ["ghost"]},
            headers=auth("admin"),
        )
        assert resp.status_code == 404
        data = client.get("/api/projects", headers=auth("admin")).json()["data"]
        assert data[0]["name"] == "Tòa nhà Minh Phát"

    def test_warranty_dates_ordered(self, client, seed):
        body = project_body(seed, items=[{"model_name": "X", "warranty_start_date": "2026-05-01",
                                          "warranty_end_date": "2026-01-01"}])
        assert client.post("/api/projects", json=body, headers=auth("admin")).status_code == 400
