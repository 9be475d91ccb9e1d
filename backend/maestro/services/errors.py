class MarketplaceError(ValueError):
    """Base class for user-visible marketplace errors."""

    code = "error"


class ForbiddenError(MarketplaceError):
    code = "forbidden"


class NotFoundError(MarketplaceError):
    code = "not_found"


class InvalidInputError(MarketplaceError):
    code = "invalid_input"


class InvalidAmountError(InvalidInputError):
    code = "invalid_amount"


class InvalidCoordinateError(InvalidInputError):
    code = "invalid_coordinate"


class ConflictError(MarketplaceError):
    code = "conflict"


class RequestClosedError(ConflictError):
    code = "request_closed"


class AlreadyAcceptedError(ConflictError):
    code = "already_accepted"


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class DuplicateClaimError(ConflictError):
    code = "duplicate_claim"


class DuplicateReviewError(ConflictError):
    code = "duplicate_review"


class DuplicateQuoteError(ConflictError):
    code = "duplicate_quote"
