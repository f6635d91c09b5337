from fieldhub.auth.security import create_access_token

from conftest import auth


def token(subject, **claims):
    return {"Authorization": f"Bearer {create_access_token(subject, **claims)}"}


class TestAuthentication:
    def test_bad_token(self, client, seed):
        resp = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid token"}

    def test_expired_token(self, client, seed):
        headers = {"Authorization": f"Bearer {create_access_token('admin', ttl_seconds=-60)}"}
        assert client.get("/api/users/me", headers=headers).status_code == 401

    def test_first_login_provisions_unassigned_user(self, client, seed):
        headers = token("idp|42", email="Moi@Example.vn", name="Nhân viên mới")
        resp = client.get("/api/users/me", headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["role"] == "NOT_ASSIGN"
        assert resp.json()["email"] == "moi@example.vn"
        assert client.get("/api/jobs", headers=headers).status_code == 403

    def test_role_claim_is_honoured(self, client, seed):
        headers = token("idp|43", email="tech@example.vn", role="Technician", department_id=str(seed.dept_install))
        body = client.get("/api/users/me", headers=headers).json()
        assert body["role"] == "Technician"
        assert body["department_id"] == str(seed.dept_install)

    def test_unknown_role_claim_falls_back(self, client, seed):
        headers = token("idp|44", email="boss@example.vn", role="SuperUser")
        assert client.get("/api/users/me", headers=headers).json()["role"] == "NOT_ASSIGN"

    def test_email_taken_by_other_subject(self, client, seed):
        headers = token("idp|45", email="admin@example.vn")
        assert client.get("/api/users/me", headers=headers).status_code == 401


class TestUsers:
    def test_technician_requires_department(self, client, seed):
        resp = client.post(
            "/api/users",
            json={"id": "idp|50", "email": "t50@example.vn", "role": "Technician"},
            headers=auth("admin"),
        )
        assert resp.status_code == 400
        assert "Department is required" in resp.json()["error"]

    def test_admin_creates_technician(self, client, seed):
        resp = client.post(
            "/api/users",
            json={"id": "idp|51", "email": "t51@example.vn", "role": "Technician",
                  "department_id": str(seed.dept_design)},
            headers=auth("admin"),
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["department"]["name"] == "Thiết kế"

    def test_duplicate_email(self, client, seed):
        resp = client.post(
            "/api/users",
            json={"id": "idp|52", "email": "sales@example.vn", "role": "Sales"},
            headers=auth("admin"),
        )
        assert resp.status_code == 409

    def test_manager_cannot_manage_users(self, client, seed):
        resp = client.post(
            "/api/users", json={"id": "idp|53", "email": "x@example.vn"}, headers=auth("manager_a")
        )
        assert resp.status_code == 403

    def test_manager_lists_own_department(self, client, seed):
        page = client.get("/api/users", params={"limit": 50}, headers=auth("manager_a")).json()
        assert sorted(u["id"] for u in page["data"]) == ["manager_a", "tech_a1", "tech_a2"]

    def test_role_filter(self, client, seed):
        page = client.get("/api/users", params={"role": "Technician"}, headers=auth("admin")).json()
        assert page["pagination"]["total"] == 4

    def test_view_other_user(self, client, seed):
        assert client.get("/api/users/tech_a1", headers=auth("manager_a")).status_code == 200
        assert client.get("/api/users/tech_b", headers=auth("manager_a")).status_code == 403
        assert client.get("/api/users/tech_b", headers=auth("tech_b")).status_code == 200
        assert client.get("/api/users/tech_b", headers=auth("tech_a1")).status_code == 403

    def test_demote_to_technician_needs_department(self, client, seed):
        resp = client.put("/api/users/sales", json={"role": "Technician"}, headers=auth("admin"))
        assert resp.status_code == 400

    def test_cannot_delete_self(self, client, seed):
        assert client.delete("/api/users/admin", headers=auth("admin")).status_code == 400


class TestDepartments:
    def test_any_role_lists_with_default_page_size(self, client, seed):
        page = client.get("/api/departments", headers=auth("tech_a1")).json()
        assert page["pagination"]["limit"] == 20
        assert {d["name"] for d in page["data"]} == {"Thi công", "Thiết kế"}

    def test_only_admin_creates(self, client, seed):
        assert client.post("/api/departments", json={"name": "Bảo trì"}, headers=auth("manager_a")).status_code == 403
        assert client.post("/api/departments", json={"name": "Bảo trì"}, headers=auth("admin")).status_code == 201
        assert client.post("/api/departments", json={"name": "Bảo trì"}, headers=auth("admin")).status_code == 409
