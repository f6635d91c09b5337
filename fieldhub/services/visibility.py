"""
Per-role redaction of job and report views.

Every presenter that hands a job or a report to a client goes through
``render_job`` / ``render_report``; there is no second code path. Which
fields an actor may see is decided by the role policy, not here.
"""
from typing import Optional

from ..schemas.jobs import JobCustomer, JobReportView, JobView, LineItemView
from .policy import Action, Actor, can


_CUSTOMER_DETAILS = frozenset({"contact_person", "phone", "address", "customer_type"})
_LINE_ITEM_PRICES = {"unit_price": True, "material": {"price": True}}


def shows_prices(actor: Actor) -> bool:
    return can(actor, Action.VIEW_JOB_FINANCIALS)


def shows_customer_details(actor: Actor) -> bool:
    return can(actor, Action.VIEW_JOB_CUSTOMER_DETAILS)


def _strip_prices(item: LineItemView) -> LineItemView:
    material = item.material.model_copy(update={"price": None}) if item.material else None
    return item.model_copy(update={"unit_price": None, "material": material})


def redact_customer(customer: Optional[JobCustomer]) -> Optional[JobCustomer]:
    if customer is None:
        return None
    return JobCustomer(id=customer.id, company_name=customer.company_name)


def sanitize(actor: Actor, job: JobView) -> JobView:
    updates = {}
    if not shows_prices(actor):
        updates["line_items"] = [_strip_prices(item) for item in job.line_items]
    if job.customer is not None and not shows_customer_details(actor):
        updates["customer"] = redact_customer(job.customer)
    if job.reports:
        updates["reports"] = [sanitize_report(actor, r) for r in job.reports]
    return job.model_copy(update=updates) if updates else job


def sanitize_report(actor: Actor, report: JobReportView) -> JobReportView:
    if report.job is None or report.job.customer is None or shows_customer_details(actor):
        return report
    job_ref = report.job.model_copy(update={"customer": redact_customer(report.job.customer)})
    return report.model_copy(update={"job": job_ref})


def job_exclusions(actor: Actor, job: JobView) -> dict:
    """Key paths removed from the JSON body; nulls elsewhere stay."""
    exclude = {}
    if not shows_prices(actor):
        exclude["line_items"] = {"__all__": _LINE_ITEM_PRICES}
    if not shows_customer_details(actor):
        exclude["customer"] = set(_CUSTOMER_DETAILS)
    # Reports are only embedded on single-job fetches
    if job.reports is None:
        exclude["reports"] = True
    return exclude


def report_exclusions(actor: Actor) -> dict:
    if shows_customer_details(actor):
        return {}
    return {"job": {"customer": set(_CUSTOMER_DETAILS)}}


def render_job(actor: Actor, job: JobView) -> dict:
    return sanitize(actor, job).model_dump(mode="json", exclude=job_exclusions(actor, job))


def render_report(actor: Actor, report: JobReportView) -> dict:
    return sanitize_report(actor, report).model_dump(mode="json", exclude=report_exclusions(actor))
