from typing import Literal, Optional

from pydantic import BaseModel, Field

UserRole = Literal["customer", "pro", "admin"]
ApprovalStatus = Literal["pending", "approved", "rejected", "suspended"]
RequestStatus = Literal["open", "awarded", "cancelled"]
TargetStatus = Literal["notified", "viewed"]
QuoteStatus = Literal["pending", "accepted", "rejected"]
JobStatus = Literal["pending", "in_progress", "done", "disputed", "cancelled"]
ClaimStatus = Literal["open", "reviewing", "approved", "rejected", "resolved"]
NotificationKind = Literal[
    "new_request",
    "new_quote",
    "quote_accepted",
    "job_started",
    "job_completed",
    "job_disputed",
    "job_cancelled",
    "new_message",
    "warranty_claim",
    "pro_approval",
]


class UserRecord(BaseModel):
    id: int
    email: str
    phone: Optional[str] = None
    role: UserRole
    status: str = "active"
    created_at: str


class CustomerProfile(BaseModel):
    id: int
    user_id: int
    full_name: str
    photo_url: Optional[str] = None


class ServiceCategory(BaseModel):
    id: int
    name: str
    slug: str


class ProProfile(BaseModel):
    id: int
    user_id: int
    display_name: str
    bio: str = ""
    experience_years: int = 0
    coverage_km: int = 10
    approval_status: ApprovalStatus
    approved_at: Optional[str] = None
    is_online: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    categories: list[str] = Field(default_factory=list)


class NearbyPro(ProProfile):
    distance_km: float


class ServiceRequest(BaseModel):
    id: int
    customer_id: int
    category_id: int
    category_name: str
    address_id: int
    street: str
    city: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: str
    photos: list[str] = Field(default_factory=list)
    urgent_mode: bool = False
    status: RequestStatus
    created_at: str


class RequestTarget(BaseModel):
    request_id: int
    pro_id: int
    status: TargetStatus
    distance_km: Optional[float] = None
    created_at: str


class Quote(BaseModel):
    id: int
    request_id: int
    pro_id: int
    pro_name: str = ""
    amount_cents: int
    estimated_hours: Optional[int] = None
    message: Optional[str] = None
    status: QuoteStatus
    created_at: str


class Job(BaseModel):
    id: int
    request_id: int
    quote_id: int
    customer_id: int
    pro_id: int
    status: JobStatus
    amount_cents: int = 0
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str


class JobMessage(BaseModel):
    id: int
    job_id: int
    sender_user_id: int
    text: str
    created_at: str


class Review(BaseModel):
    id: int
    job_id: int
    author_user_id: int
    target_pro_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    created_at: str


class WarrantyClaim(BaseModel):
    id: int
    job_id: int
    customer_id: int
    pro_id: int
    description: str
    photos: list[str] = Field(default_factory=list)
    status: ClaimStatus
    admin_notes: Optional[str] = None
    created_at: str
    updated_at: str
    resolved_at: Optional[str] = None


class NotificationRecord(BaseModel):
    id: int
    user_id: int
    kind: str
    title: str
    message: str
    link: Optional[str] = None
    read: bool = False
    created_at: str


class NotificationList(BaseModel):
    notifications: list[NotificationRecord]
    unread_count: int


class AuthLoginRequest(BaseModel):
    user_id: int
    password: str


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    user_id: int
    role: UserRole
    expires_at: str


class AuthMeResponse(BaseModel):
    user_id: int
    role: UserRole


class CustomerOnboardingRequest(BaseModel):
    email: str
    full_name: str
    phone: Optional[str] = None
    photo_url: Optional[str] = None


class ProOnboardingRequest(BaseModel):
    email: str
    display_name: str
    phone: Optional[str] = None
    bio: str = ""
    experience_years: int = 0
    coverage_km: int = 10
    categories: list[str] = Field(default_factory=list)


class OnboardingResponse(BaseModel):
    user_id: int
    profile_id: int
    role: UserRole
    access_token: str
    expires_at: str


class ProOnlineRequest(BaseModel):
    is_online: bool


class ProLocationRequest(BaseModel):
    latitude: float
    longitude: float


class ProCategoriesRequest(BaseModel):
    categories: list[str]


class ProApprovalRequest(BaseModel):
    status: ApprovalStatus


class ServiceRequestCreate(BaseModel):
    category_id: int
    street: str
    city: str
    description: str
    photos: list[str] = Field(default_factory=list)
    urgent_mode: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ServiceRequestCreated(BaseModel):
    request: ServiceRequest
    matched_count: int


class ServiceRequestView(BaseModel):
    request: ServiceRequest
    targets: list[RequestTarget] = Field(default_factory=list)
    job_id: Optional[int] = None


class QuoteCreate(BaseModel):
    request_id: int
    amount_cents: int
    estimated_hours: Optional[int] = None
    message: Optional[str] = None


class QuoteAcceptResponse(BaseModel):
    job: Job
    quote: Quote


class CategoryAveragePrice(BaseModel):
    category_id: int
    category_name: str
    average_cents: int
    quote_count: int


class JobStatusUpdateRequest(BaseModel):
    status: str


class AdminJobStatusRequest(BaseModel):
    status: str
    note: str = ""


class JobMessageCreate(BaseModel):
    text: str


class ReviewCreate(BaseModel):
    rating: int
    comment: Optional[str] = None


class WarrantyClaimCreate(BaseModel):
    job_id: int
    description: str
    photos: list[str] = Field(default_factory=list)


class WarrantyClaimStatusUpdate(BaseModel):
    status: str
    admin_notes: Optional[str] = None


class CustomerStats(BaseModel):
    total_spent_cents: int
    total_requests: int
    total_jobs: int
    completed_jobs: int
    completion_rate_pct: int


class ProStats(BaseModel):
    total_earnings_cents: int
    total_jobs: int
    completed_jobs: int
    active_jobs: int
    average_rating: float
    review_count: int
    quotes_sent: int
    acceptance_rate_pct: int
