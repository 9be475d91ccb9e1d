from fastapi import APIRouter, Depends

from maestro.auth import Principal, require_principal
from maestro.models import (
    AdminJobStatusRequest,
    Job,
    JobMessage,
    JobMessageCreate,
    JobStatusUpdateRequest,
    Review,
    ReviewCreate,
)
from maestro.routers.http_errors import raise_http_error
from maestro.services.errors import MarketplaceError
from maestro.services.job_engine import job_engine
from maestro.services.reviews import review_store

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[Job])
def list_my_jobs(principal: Principal = Depends(require_principal)):
    try:
        if principal.role == "pro":
            return job_engine.list_pro_jobs(pro_user_id=principal.user_id)
        return job_engine.list_customer_jobs(customer_user_id=principal.user_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/{job_id}", response_model=Job)
def get_job(job_id: int, principal: Principal = Depends(require_principal)):
    try:
        return job_engine.get_job(user_id=principal.user_id, job_id=job_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/{job_id}/status", response_model=Job)
def update_job_status(
    job_id: int,
    payload: JobStatusUpdateRequest,
    principal: Principal = Depends(require_principal),
):
    try:
        return job_engine.update_status(actor_user_id=principal.user_id, job_id=job_id, new_status=payload.status)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/{job_id}/admin-status", response_model=Job)
def admin_set_job_status(
    job_id: int,
    payload: AdminJobStatusRequest,
    principal: Principal = Depends(require_principal),
):
    try:
        return job_engine.admin_set_status(
            admin_user_id=principal.user_id,
            job_id=job_id,
            new_status=payload.status,
            note=payload.note,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/{job_id}/messages", response_model=list[JobMessage])
def list_job_messages(job_id: int, principal: Principal = Depends(require_principal)):
    try:
        return job_engine.list_messages(user_id=principal.user_id, job_id=job_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/{job_id}/messages", response_model=JobMessage)
def post_job_message(
    job_id: int,
    payload: JobMessageCreate,
    principal: Principal = Depends(require_principal),
):
    try:
        return job_engine.post_message(sender_user_id=principal.user_id, job_id=job_id, text=payload.text)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/{job_id}/reviews", response_model=Review)
def create_review(
    job_id: int,
    payload: ReviewCreate,
    principal: Principal = Depends(require_principal),
):
    try:
        return review_store.create_review(
            customer_user_id=principal.user_id,
            job_id=job_id,
            rating=payload.rating,
            comment=payload.comment,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)
