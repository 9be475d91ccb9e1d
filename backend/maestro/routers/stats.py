from fastapi import APIRouter, Depends

from maestro.auth import Principal, require_principal
from maestro.models import CustomerStats, ProStats
from maestro.routers.http_errors import raise_http_error
from maestro.services.errors import MarketplaceError
from maestro.services.stats import stats_service

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/customer", response_model=CustomerStats)
def customer_stats(principal: Principal = Depends(require_principal)):
    try:
        return stats_service.customer_stats(customer_user_id=principal.user_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/pro", response_model=ProStats)
def pro_stats(principal: Principal = Depends(require_principal)):
    try:
        return stats_service.pro_stats(pro_user_id=principal.user_id)
    except MarketplaceError as exc:
        raise_http_error(exc)
