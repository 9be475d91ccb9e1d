from fastapi import APIRouter, Depends

from maestro.auth import Principal, require_principal
from maestro.models import (
    CategoryAveragePrice,
    Quote,
    QuoteAcceptResponse,
    QuoteCreate,
    ServiceRequest,
    ServiceRequestCreate,
    ServiceRequestCreated,
    ServiceRequestView,
)
from maestro.routers.http_errors import raise_http_error
from maestro.services.errors import MarketplaceError
from maestro.services.job_engine import job_engine
from maestro.services.quote_ledger import quote_ledger
from maestro.services.targeting import targeting_service

router = APIRouter(tags=["requests"])


@router.post("/requests", response_model=ServiceRequestCreated)
def create_request(payload: ServiceRequestCreate, principal: Principal = Depends(require_principal)):
    try:
        request, matched_count = targeting_service.create_request(
            customer_user_id=principal.user_id,
            category_id=payload.category_id,
            street=payload.street,
            city=payload.city,
            description=payload.description,
            photos=payload.photos,
            urgent_mode=payload.urgent_mode,
            latitude=payload.latitude,
            longitude=payload.longitude,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)
    return ServiceRequestCreated(request=request, matched_count=matched_count)


@router.get("/requests", response_model=list[ServiceRequest])
def list_my_requests(principal: Principal = Depends(require_principal)):
    try:
        return targeting_service.list_customer_requests(customer_user_id=principal.user_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/requests/{request_id}", response_model=ServiceRequestView)
def get_request(request_id: int, principal: Principal = Depends(require_principal)):
    try:
        request, targets, job_id = targeting_service.get_request(user_id=principal.user_id, request_id=request_id)
    except MarketplaceError as exc:
        raise_http_error(exc)
    return ServiceRequestView(request=request, targets=targets, job_id=job_id)


@router.get("/requests/{request_id}/quotes", response_model=list[Quote])
def list_request_quotes(request_id: int, principal: Principal = Depends(require_principal)):
    try:
        return quote_ledger.list_request_quotes(user_id=principal.user_id, request_id=request_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/quotes", response_model=Quote)
def create_quote(payload: QuoteCreate, principal: Principal = Depends(require_principal)):
    try:
        return quote_ledger.create_quote(
            pro_user_id=principal.user_id,
            request_id=payload.request_id,
            amount_cents=payload.amount_cents,
            estimated_hours=payload.estimated_hours,
            message=payload.message,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/quotes/average", response_model=list[CategoryAveragePrice])
def average_prices():
    return quote_ledger.average_prices_by_category()


@router.post("/quotes/{quote_id}/accept", response_model=QuoteAcceptResponse)
def accept_quote(quote_id: int, principal: Principal = Depends(require_principal)):
    try:
        job, quote = job_engine.accept_quote(customer_user_id=principal.user_id, quote_id=quote_id)
    except MarketplaceError as exc:
        raise_http_error(exc)
    return QuoteAcceptResponse(job=job, quote=quote)
