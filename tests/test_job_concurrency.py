"""
Lost-update protection for status writes.

Two sessions on one file-backed SQLite database stand in for two concurrent
requests: both read the job in the same status, the first one commits its
transition, and the second one's compare-and-set must find nothing to update.
"""
import pytest
from sqlalchemy import create_engine, func, select, update
from sqlalchemy.orm import sessionmaker

from fieldhub.db import Base
from fieldhub.errors import InvalidStateTransition, StaleState
from fieldhub.models.enums import JobStatus, JobType, UserRole
from fieldhub.models.models import Customer, Department, Job, JobReport, JobTechnician, User
from fieldhub.schemas.jobs import JobReportCreate
from fieldhub.services import job_reports, jobs
from fieldhub.services.job_lifecycle import JobEvent
from fieldhub.services.policy import Actor

from conftest import auth

VOICE = "https://cdn.example.vn/voice/race.m4a"

ADMIN = Actor(id="admin", role=UserRole.ADMIN)


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'fieldhub.db'}", future=True)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, future=True)
    first, second = factory(), factory()
    yield first, second
    first.close()
    second.close()
    engine.dispose()


def seed_job(session, status):
    install = Department(name="Thi công")
    session.add(install)
    session.flush()
    session.add_all([
        User(id="admin", email="admin@example.vn", role=UserRole.ADMIN),
        User(id="tech_a1", email="tech_a1@example.vn", role=UserRole.TECHNICIAN, department_id=install.id),
    ])
    customer = Customer(company_name="Công ty Minh Phát")
    session.add(customer)
    session.flush()
    job = Job(job_code="RACE-1", customer_id=customer.id, job_type=JobType.REPAIR, status=status)
    session.add(job)
    session.flush()
    session.add(JobTechnician(job_id=job.id, user_id="tech_a1", position=0))
    session.commit()
    return job.id


def report_payload(job_id):
    return JobReportCreate(job_id=job_id, problem_summary="Máy không lạnh", voice_message_url=VOICE)


def report_count(session, job_id):
    return session.execute(select(func.count()).select_from(JobReport).where(JobReport.job_id == job_id)).scalar_one()


class TestConcurrentApproval:
    def test_second_approval_is_stale(self, file_sessions):
        first, second = file_sessions
        job_id = seed_job(first, JobStatus.PENDING_APPROVAL)

        stale = jobs.load_job(second, job_id)
        assert stale.status is JobStatus.PENDING_APPROVAL

        approved = jobs.approve_job(first, ADMIN, job_id)
        assert approved.status is JobStatus.APPROVED

        with pytest.raises(StaleState):
            jobs._compare_and_set(
                second, stale, JobEvent.APPROVE, status=JobStatus.APPROVED, actual_end_time=jobs.utcnow()
            )

        first.expire_all()
        assert jobs.load_job(first, job_id).status is JobStatus.APPROVED

    def test_finalize_after_concurrent_finalize_is_stale(self, file_sessions):
        first, second = file_sessions
        job_id = seed_job(first, JobStatus.APPROVED)

        stale = jobs.load_job(second, job_id)
        jobs.finalize_job(first, ADMIN, job_id)

        with pytest.raises(StaleState):
            jobs._compare_and_set(second, stale, JobEvent.FINALIZE, status=JobStatus.FINALIZED)

    def test_stale_transition_is_409(self, client, make_job, monkeypatch):
        job = make_job()
        client.post(
            "/api/job-reports", json={"job_id": job["id"], "voice_message_url": VOICE}, headers=auth("tech_a1")
        )
        # No stored status matches, as if another request moved the job first
        monkeypatch.setattr(jobs, "expected_status", lambda event: ())
        resp = client.post(f"/api/jobs/{job['id']}/approve", headers=auth("admin"))
        assert resp.status_code == 409
        assert "changed status" in resp.json()["error"]


class TestConcurrentReportSubmission:
    def test_report_kept_when_job_already_pending(self, file_sessions, monkeypatch):
        first, second = file_sessions
        job_id = seed_job(first, JobStatus.ASSIGNED)

        stale = jobs.load_job(second, job_id)
        job_reports.submit_report(first, ADMIN, report_payload(job_id))

        monkeypatch.setattr(job_reports, "load_job", lambda db, jid, for_update=False: stale)
        report = job_reports.submit_report(second, ADMIN, report_payload(job_id))

        assert report.job_id == job_id
        first.expire_all()
        assert report_count(first, job_id) == 2
        assert first.get(Job, job_id).status is JobStatus.PENDING_APPROVAL

    def test_report_rejected_when_job_finalized_meanwhile(self, file_sessions, monkeypatch):
        first, second = file_sessions
        job_id = seed_job(first, JobStatus.ASSIGNED)

        stale = jobs.load_job(second, job_id)
        monkeypatch.setattr(job_reports, "load_job", lambda db, jid, for_update=False: stale)

        first.execute(update(Job).where(Job.id == job_id).values(status=JobStatus.FINALIZED))
        first.commit()

        with pytest.raises(InvalidStateTransition, match="finalized"):
            job_reports.submit_report(second, ADMIN, report_payload(job_id))

        first.expire_all()
        assert report_count(first, job_id) == 0
        assert first.get(Job, job_id).status is JobStatus.FINALIZED
