from fastapi import HTTPException

from maestro.services.errors import ConflictError, ForbiddenError, MarketplaceError, NotFoundError


def raise_http_error(exc: MarketplaceError) -> None:
    detail = {"error": exc.code, "message": str(exc)}
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=detail)
    if isinstance(exc, ForbiddenError):
        raise HTTPException(status_code=403, detail=detail)
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=409, detail=detail)
    raise HTTPException(status_code=400, detail=detail)
