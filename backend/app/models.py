from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

AccountRole = Literal["farmer", "seller", "veterinarian", "buyer", "admin"]
AppointmentStatus = Literal["pending", "confirmed", "completed", "cancelled"]
AppointmentAction = Literal["confirm", "complete", "cancel"]


class Account(BaseModel):
    id: str
    name: str
    email: str
    role: AccountRole
    phone: str = ""
    location: str = ""
    clinic_name: str = ""
    specialization: str = ""
    rating: float = 0.0
    created_at: str


class AccountCreateRequest(BaseModel):
    name: str
    email: str
    role: Literal["farmer", "seller", "veterinarian", "buyer"]
    phone: str = ""
    location: str = ""
    clinic_name: str = ""
    specialization: str = ""


class ImageRef(BaseModel):
    url: str
    asset_id: str


class Listing(BaseModel):
    id: str
    seller_id: str
    title: str
    breed: str
    animal_type: str
    description: str
    price: float
    images: list[ImageRef] = Field(default_factory=list)
    created_at: str


class ListingCreateRequest(BaseModel):
    user_id: str
    title: str
    breed: str
    animal_type: str
    description: str
    price: float
    images: list[ImageRef] = Field(default_factory=list)


class Product(BaseModel):
    id: str
    seller_id: str
    title: str
    category: str
    unit: str
    description: str
    price: float
    images: list[ImageRef] = Field(default_factory=list)
    created_at: str


class ProductCreateRequest(BaseModel):
    user_id: str
    title: str
    category: str
    unit: str = "piece"
    description: str
    price: float
    images: list[ImageRef] = Field(default_factory=list)


class DeletionReport(BaseModel):
    resource_type: Literal["account", "listing", "product"]
    resource_id: str
    deleted: bool = True
    removed: Dict[str, int] = Field(default_factory=dict)
    failed_dependents: list[str] = Field(default_factory=list)
    failed_assets: list[str] = Field(default_factory=list)


class Rating(BaseModel):
    id: str
    reviewer_id: str
    provider_id: str
    score: int = Field(ge=1, le=5)
    review: Optional[str] = None
    experience: str
    created_at: str
    updated_at: str


class RatingSubmitRequest(BaseModel):
    reviewer_id: str
    provider_id: str
    score: int
    review: Optional[str] = None
    experience: str = ""


class RatingSubmitResult(BaseModel):
    rating: Rating
    created: bool
    provider_rating: float


class ProviderRatingSummary(BaseModel):
    provider_id: str
    rating: float
    count: int
    ratings: list[Rating]


class RatingRepairResult(BaseModel):
    providers: Dict[str, float]


class Appointment(BaseModel):
    id: str
    provider_id: str
    provider_name: str
    requester_id: str
    requester_name: str
    patient_name: str
    patient_phone: str
    animal_type: str
    animal_age: str = ""
    problem: str
    preferred_date: str
    preferred_time: str
    urgency: Literal["emergency", "urgent", "normal"] = "normal"
    additional_notes: str = ""
    status: AppointmentStatus = "pending"
    confirmed_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: str
    updated_at: str


class AppointmentBookRequest(BaseModel):
    user_id: str
    provider_id: str
    patient_name: str = ""
    patient_phone: str = ""
    animal_type: str = ""
    animal_age: str = ""
    problem: str = ""
    preferred_date: str = ""
    preferred_time: str = ""
    urgency: Optional[str] = None
    additional_notes: str = ""


class AppointmentStatusUpdateRequest(BaseModel):
    actor_user_id: str
    action: str
    reason: Optional[str] = None
    notes: Optional[str] = None


class AppointmentStatusChange(BaseModel):
    id: str
    appointment_id: str
    actor_id: str
    from_status: str
    to_status: str
    note: str = ""
    created_at: str


class AppointmentStats(BaseModel):
    today: int
    this_week: int
    total_patients: int
    pending: int


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    title: str
    body: str
    category: Literal["appointment", "rating", "account", "system"] = "system"
    read: bool = False
    created_at: str
    deep_link: Optional[str] = None
