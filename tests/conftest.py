import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT"] = "100000/minute"

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldhub.auth.security import create_access_token
from fieldhub.db import Base, get_db
from fieldhub.main import app
from fieldhub.models.enums import UserRole
from fieldhub.models.models import Customer, Department, MaterialService, User


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def seed(db):
    """Two departments with a manager and technicians each, plus one of every other role."""
    install = Department(name="Thi công")
    design = Department(name="Thiết kế")
    db.add_all([install, design])
    db.flush()

    def user(uid, role, dept=None):
        row = User(id=uid, email=f"{uid}@example.vn", full_name=uid.replace("_", " ").title(), role=role,
                   department_id=dept.id if dept else None)
        db.add(row)
        return row

    user("admin", UserRole.ADMIN)
    user("manager_a", UserRole.MANAGER, install)
    user("manager_b", UserRole.MANAGER, design)
    user("manager_nodept", UserRole.MANAGER)
    user("tech_a1", UserRole.TECHNICIAN, install)
    user("tech_a2", UserRole.TECHNICIAN, install)
    user("tech_b", UserRole.TECHNICIAN, design)
    user("tech_nodept", UserRole.TECHNICIAN)
    user("sales", UserRole.SALES)
    user("newcomer", UserRole.NOT_ASSIGN)

    customer = Customer(company_name="Công ty Minh Phát", contact_person="Chị Lan", phone="0909000111",
                        address="12 Lê Lợi, Q1", customer_type="Doanh nghiệp")
    material = MaterialService(item_code="DH-01", name="Điều hòa 12000BTU", type="material", unit="bộ", price=8500000)
    db.add_all([customer, material])
    db.commit()
    return SimpleNamespace(
        dept_install=install.id,
        dept_design=design.id,
        customer_id=customer.id,
        material_id=material.id,
    )


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def make_job(client, seed):
    """Create a job through the API as admin and return its JSON."""
    counter = {"n": 0}

    def _make(technician_ids=None, job_code=None, line_items=None, actor="admin"):
        counter["n"] += 1
        body = {
            "job_code": job_code or f"JOB-{counter['n']:03d}",
            "customer_id": str(seed.customer_id),
            "job_type": "Bảo hành",
            "scheduled_start_time": "2026-03-02T08:00:00+07:00",
            "scheduled_end_time": "2026-03-02T11:00:00+07:00",
            "technician_ids": technician_ids if technician_ids is not None else ["tech_a1"],
            "line_items": line_items if line_items is not None else [
                {"material_id": str(seed.material_id), "quantity": 2}
            ],
        }
        resp = client.post("/api/jobs", json=body, headers=auth(actor))
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make
