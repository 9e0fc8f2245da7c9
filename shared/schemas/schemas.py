"""
shared/schemas/schemas.py
All Pydantic v2 schemas for the console.

Two families live here:
- Backend* models validate payloads received from the backend REST API
  (camelCase on the wire, unknown fields preserved).
- The rest are the console's own request/response schemas (snake_case).
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class BackendSchema(BaseModel):
    """Payload received from the backend. Unknown fields are kept as extras."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def raw(self) -> Dict[str, Any]:
        """The record as the backend spelled it."""
        return self.model_dump(by_alias=True, exclude_none=True)


class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class Notice(BaseSchema):
    level: Literal["success", "error", "info"]
    message: str


class PaginatedResponse(BaseSchema):
    items: List[Any]
    total: int
    page: int
    page_size: int
    total_pages: int


# ── Enumerations ──────────────────────────────────────────────

class AdminRole(str, Enum):
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class ReportPrefix(str, Enum):
    LIFE_JOURNEY = "#LJR-"
    LIFE_CHANGING = "#LCR-"
    KUNDLI_MATCHING = "#KM-"
    LOVE = "#LR-"
    NAME_NUMBER = "#VR-"
    BABY_NAME = "#BNR-"


REPORT_PREFIX_LABELS: Dict[str, str] = {
    ReportPrefix.LIFE_JOURNEY.value: "Life Journey Report",
    ReportPrefix.LIFE_CHANGING.value: "Life Changing Report",
    ReportPrefix.KUNDLI_MATCHING.value: "Kundli Matching Report",
    ReportPrefix.LOVE.value: "Love Report",
    ReportPrefix.NAME_NUMBER.value: "Name Number Report",
    ReportPrefix.BABY_NAME.value: "Baby Name Report",
}


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    FAILED = "failed"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    DELIVERED = "delivered"


class BlockScope(str, Enum):
    GLOBAL = "global"
    REPORT = "report"
    ASTROLOGER = "astrologer"
    REPORT_ASTROLOGER = "report_astrologer"


# ── Backend: shared references ────────────────────────────────

class BackendRef(BackendSchema):
    id: Optional[str] = Field(None, alias="_id")


class AstrologerRef(BackendRef):
    astrologer_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.astrologer_name or self.name


class CustomerRef(BackendRef):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class Pagination(BackendSchema):
    page: int = 1
    pages: int = 1
    total: int = 0
    limit: int = 0
    has_more: bool = False
    showing: int = 0


# ── Backend: slots ────────────────────────────────────────────

class ReportAstrologer(BackendRef):
    name: Optional[str] = None
    email: Optional[str] = None
    profile_image: Optional[str] = None
    report_types: List[str] = []


class ReportAstrologersEnvelope(BackendSchema):
    astrologers: List[ReportAstrologer] = []


class AvailableSlot(BackendSchema):
    time: str
    capacity: int = 0
    available_astrologers: List[AstrologerRef] = []


class AvailableSlotsEnvelope(BackendSchema):
    slots: List[AvailableSlot] = []
    message: Optional[str] = None


class BlockedSlot(BackendRef):
    time_range: Optional[str] = None
    date: Optional[str] = None
    prefix: Optional[str] = None
    astrologer_id: Union[AstrologerRef, str, None] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reason: Optional[str] = None
    blocked_by: Optional[str] = None

    @property
    def astrologer_name(self) -> Optional[str]:
        if isinstance(self.astrologer_id, AstrologerRef):
            return self.astrologer_id.display_name
        return None


class BlockedSlotsEnvelope(BackendSchema):
    blocked_slots: List[BlockedSlot] = []


class ConsultationBookedSlot(BackendSchema):
    order_id: Optional[str] = Field(None, alias="orderID")
    name: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    consultation_date: Optional[str] = None
    consultation_time: Optional[str] = None
    status: str = ""
    plan_name: Optional[str] = None


class ConsultationBookedSlotsEnvelope(BackendSchema):
    all_slots: List[ConsultationBookedSlot] = []


# ── Backend: report orders ────────────────────────────────────

class ReportOrder(BackendRef):
    order_id: Optional[str] = Field(None, alias="orderID")
    name: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    report_language: Optional[str] = None
    plan_name: Optional[str] = None
    amount: Union[float, str, None] = None
    status: Optional[str] = None
    source: Optional[str] = None
    astro_consultation: Optional[bool] = None
    express_delivery: Optional[bool] = None
    report_delivery_status: Optional[str] = None
    drive_file_url: Optional[str] = None
    payment_at: Optional[str] = None
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None


class ReportQueueData(BackendSchema):
    items: List[ReportOrder] = []
    pagination: Pagination = Pagination()
    summary: Optional[Dict[str, Any]] = None


class ReportQueueEnvelope(BackendSchema):
    message: Optional[str] = None
    data: ReportQueueData = ReportQueueData()


class ReportOrdersPage(BackendSchema):
    items: List[ReportOrder] = []
    page: int = 1
    pages: int = 1
    total: int = 0
    limit: int = 0


class ReportOrderStats(BackendSchema):
    total_orders: int = 0
    total_revenue: float = 0
    today_orders: int = 0
    today_revenue: float = 0


# ── Backend: consultation logs & bookings ─────────────────────

class PaymentDetails(BackendSchema):
    payment_id: Optional[str] = None
    currency: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    fee: Optional[float] = None
    tax: Optional[float] = None
    transaction_id: Optional[str] = None
    payment_amount: Optional[float] = None
    payment_method: Optional[str] = None


class SlotRef(BackendRef):
    duration: Optional[int] = None
    from_time: Optional[str] = None
    to_time: Optional[str] = None


class ConsultationLog(BackendRef):
    payment_details: Optional[PaymentDetails] = None
    customer_id: Union[CustomerRef, str, None] = None
    astrologer_id: Union[AstrologerRef, str, None] = None
    full_name: Optional[str] = None
    mobile_number: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    time_of_birth: Optional[str] = None
    place_of_birth: Optional[str] = None
    slot_id: Union[SlotRef, str, None] = None
    date: Optional[str] = None
    from_time: Optional[str] = None
    to_time: Optional[str] = None
    status: str = ""
    consultation_price: Optional[float] = None
    consultation_type: Optional[str] = None
    consultation_topic: Optional[str] = None
    booking_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ConsultationLogsEnvelope(BackendSchema):
    data: List[ConsultationLog] = []


class ConsultationBookingsEnvelope(BackendSchema):
    bookings: List[ConsultationLog] = []


# ── Backend: pujas ────────────────────────────────────────────

class PujaRef(BackendRef):
    title: Optional[str] = None
    puja_name: Optional[str] = None


class PujaBookingDetails(BackendSchema):
    puja_id: Union[PujaRef, str, None] = None
    package_id: Optional[str] = None
    selected_date: Optional[str] = None
    price: Optional[float] = None
    assigned_astro: Optional[AstrologerRef] = None
    booking_date: Optional[str] = None
    status: Optional[str] = None


class SankalpPerson(BackendSchema):
    full_name: Optional[str] = None
    email: Optional[str] = None
    whatsapp_number: Optional[str] = None
    puja_reason: Optional[str] = None
    gotra: Optional[str] = None


class PujaBooking(BackendRef):
    customer_id: Union[CustomerRef, str, None] = None
    puja_details: Optional[PujaBookingDetails] = None
    sankalp_person: Optional[SankalpPerson] = None
    delivery_address: Optional[Dict[str, Any]] = None
    confirmation_number: Optional[str] = None
    payment_status: str = ""
    payment_details: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None


class PujaBookingsEnvelope(BackendSchema):
    data: List[PujaBooking] = []


class PujaCategory(BackendRef):
    category_name: Optional[str] = None


class PujaCategoriesEnvelope(BackendSchema):
    results: List[PujaCategory] = []


# ── Backend: astrologers ──────────────────────────────────────

class SlotDuration(BackendRef):
    slot_duration: int = 0
    active: bool = True


class SlotDurationsEnvelope(BackendSchema):
    slots: List[SlotDuration] = []


class ConsultationPrice(BackendRef):
    duration: Union[SlotDuration, str]
    price: float

    @property
    def duration_id(self) -> Optional[str]:
        return self.duration.id if isinstance(self.duration, SlotDuration) else self.duration


class Astrologer(BackendRef):
    astrologer_name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    is_verified: bool = False
    created_at: Optional[str] = None
    consultation_prices: List[ConsultationPrice] = []


class AstrologerListEnvelope(BackendSchema):
    astrologers: List[Astrologer] = []


class AstrologerDetailEnvelope(BackendSchema):
    results: Astrologer


class FirstTimeOfferData(BackendSchema):
    first_time_offer_prices: List[ConsultationPrice] = []
    go_with_custom_pricings: bool = Field(False, alias="GoWithCustomPricings")
    use_global_first_time_offer_price: Optional[bool] = None


class FirstTimeOfferEnvelope(BackendSchema):
    data: Optional[FirstTimeOfferData] = None


class OfferPriceData(BackendSchema):
    offer_price: Optional[float] = Field(None, alias="OfferPrice")


class OfferPriceEnvelope(BackendSchema):
    data: Optional[OfferPriceData] = None


# ── Backend: admins & sidebar ─────────────────────────────────

class AdminIdentity(BackendRef):
    username: str = ""
    email: Optional[str] = None
    role: str = ""


class AdminAccount(BackendRef):
    username: str = ""
    email: Optional[str] = None
    role: str = AdminRole.ADMIN.value
    is_active: bool = True
    assigned_routes: List[str] = []
    created_at: Optional[str] = None
    last_login: Optional[str] = None


class AdminsEnvelope(BackendSchema):
    admins: List[AdminAccount] = []


class SidebarRoute(BackendRef):
    name: str
    path: Optional[str] = None
    icon: Optional[str] = None
    order: int = 0
    parent_route: Optional[str] = None
    description: Optional[str] = None
    sub_routes: List["SidebarRoute"] = []
    assigned_admins: List[str] = []


SidebarRoute.model_rebuild()


class SidebarEnvelope(BackendSchema):
    use_fallback: bool = False
    routes: List[SidebarRoute] = []


# ── Slots: requests & views ───────────────────────────────────

def _none_if_all(v: Optional[str]) -> Optional[str]:
    if v is None or v.strip() in ("", "all"):
        return None
    return v.strip()


class SlotBlockRequest(BaseSchema):
    date: date
    time_range: str = Field(..., min_length=3)
    prefix: ReportPrefix
    astrologer_id: Optional[str] = None

    _normalize_astrologer = field_validator("astrologer_id")(_none_if_all)


class BulkSlotRequest(BaseSchema):
    date: date
    prefix: ReportPrefix
    astrologer_id: Optional[str] = None
    action: Literal["block", "unblock"]
    time_ranges: List[str] = []

    _normalize_astrologer = field_validator("astrologer_id")(_none_if_all)


class SlotView(BaseSchema):
    time: str
    capacity: int = 0
    available_astrologers: List[str] = []
    is_available: bool
    is_blocked: bool
    blocked_slot_id: Optional[str] = None
    scope: Optional[BlockScope] = None
    block_scope: Optional[str] = None
    reason: Optional[str] = None
    blocked_by: Optional[str] = None


class SlotBoardResponse(BaseSchema):
    date: date
    prefix: str
    astrologer_id: Optional[str] = None
    target_description: str
    available_count: int
    blocked_count: int
    slots: List[SlotView]


class NextDay(BaseSchema):
    date: date
    label: str


class TimeRangeBlockRequest(BaseSchema):
    date: date
    prefix: Optional[str] = "all"
    astrologer_id: Optional[str] = "all"
    full_day: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    _normalize_scope = field_validator("prefix", "astrologer_id")(_none_if_all)

    @field_validator("prefix")
    @classmethod
    def known_prefix(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in REPORT_PREFIX_LABELS:
            raise ValueError(f"Unknown report prefix {v}")
        return v


class TimeRangeView(BaseSchema):
    id: Optional[str] = None
    date: Optional[str] = None
    time_range: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    prefix: Optional[str] = None
    astrologer_name: Optional[str] = None
    description: str
    reason: Optional[str] = None
    blocked_by: Optional[str] = None


# ── Batch operations ──────────────────────────────────────────

class BatchItemResult(BaseSchema):
    key: str
    status: Literal["succeeded", "failed", "skipped"]
    reason: Optional[str] = None


class BatchResult(BaseSchema):
    items: List[BatchItemResult] = []

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.status == "succeeded")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.status == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for i in self.items if i.status == "skipped")


class BatchSummary(BaseSchema):
    succeeded: int
    failed: int
    skipped: int
    items: List[BatchItemResult]


class BulkSlotResponse(BaseSchema):
    action: str
    result: BatchSummary
    notices: List[Notice]
    board: Optional[SlotBoardResponse] = None


# ── Reports: requests & views ─────────────────────────────────

class ProcessReportsRequest(BaseSchema):
    report_ids: List[str] = []


class SelectableRow(BaseSchema):
    id: Optional[str] = None
    report_delivery_status: Optional[str] = None


class ToggleAllRequest(BaseSchema):
    selected_ids: List[str] = []
    rows: List[SelectableRow] = []


class SelectionResponse(BaseSchema):
    selected_ids: List[str]


class QueuePagination(BaseSchema):
    page: int
    pages: int
    total: int
    limit: int
    has_more: bool
    showing: int


class ReportQueueResponse(BaseSchema):
    items: List[Dict[str, Any]]
    pagination: QueuePagination
    summary: Optional[Dict[str, Any]] = None
    selected_ids: List[str]
    failed_count: int
    delivered_count: int


class ReportOrdersResponse(BaseSchema):
    items: List[Dict[str, Any]]
    total: int
    pages_fetched: int


class ReportOrderStatsResponse(BaseSchema):
    total_orders: int
    total_revenue: float
    today_orders: int
    today_revenue: float


class ReportOrderUpdate(BaseSchema):
    """Editable fields of a report order, sent to the backend in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    plan_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    gender: Optional[str] = None
    report_language: Optional[str] = None
    date_of_birth: Optional[str] = None
    time_of_birth: Optional[str] = None
    place_of_birth: Optional[str] = None
    place_of_birth_pincode: Optional[str] = None
    astro_consultation: Optional[bool] = None
    consultation_date: Optional[str] = None
    consultation_time: Optional[str] = None
    problem_type: Optional[str] = None
    partner_date_of_birth: Optional[str] = None
    partner_time_of_birth: Optional[str] = None
    partner_place_of_birth: Optional[str] = None
    partner_place_of_birth_pincode: Optional[str] = None
    express_delivery: Optional[bool] = None
    question_one: Optional[str] = None
    question_two: Optional[str] = None
    status: Optional[OrderStatus] = None


class ConsultationSlotRow(BaseSchema):
    order_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    consultation_date: Optional[str] = None
    consultation_time: Optional[str] = None
    plan_name: Optional[str] = None
    status: str
    status_label: str


class ConsultationSlotsResponse(BaseSchema):
    start_date: date
    end_date: date
    prefix: str
    items: List[ConsultationSlotRow]
    by_date: Dict[str, List[ConsultationSlotRow]]


# ── Logs: views ───────────────────────────────────────────────

class StatusCounts(BaseSchema):
    all: int = 0
    pending_payment: int = 0
    booked: int = 0
    failed: int = 0
    completed: int = 0
    cancelled: int = 0


class ConsultationLogRow(BaseSchema):
    id: Optional[str] = None
    booking_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    mobile_number: Optional[str] = None
    astrologer_id: Optional[str] = None
    astrologer_name: Optional[str] = None
    date: Optional[str] = None
    from_time: Optional[str] = None
    to_time: Optional[str] = None
    consultation_type: Optional[str] = None
    consultation_topic: Optional[str] = None
    consultation_price: Optional[float] = None
    status: str
    normalized_status: str
    status_label: str
    status_color: str
    is_paid: bool
    payment_id: Optional[str] = None
    created_at: Optional[str] = None


class ConsultationLogsResponse(BaseSchema):
    start_date: date
    end_date: date
    status: str
    counts: StatusCounts
    items: List[ConsultationLogRow]


class ConsultationBookingsResponse(BaseSchema):
    total: int
    items: List[ConsultationLogRow]


# ── Pujas: views ──────────────────────────────────────────────

class PaymentCounts(BaseSchema):
    all: int = 0
    successful: int = 0
    pending: int = 0
    failed: int = 0


class PujaBookingRow(BaseSchema):
    id: Optional[str] = None
    confirmation_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    puja_title: Optional[str] = None
    package_id: Optional[str] = None
    selected_date: Optional[str] = None
    price: Optional[float] = None
    assigned_astrologer: Optional[str] = None
    sankalp_name: Optional[str] = None
    payment_status: str
    payment_label: str
    payment_color: str
    created_at: Optional[str] = None


class PujaBookingsResponse(BaseSchema):
    start_date: date
    end_date: date
    payment_status: str
    counts: PaymentCounts
    items: List[PujaBookingRow]


# ── Pujas: editor form ────────────────────────────────────────
# Draft data is loose (whatever the operator has typed so far); the
# *Tab models below are the per-tab validation rules.

class WhyYouShouldItem(BaseSchema):
    title: str = ""
    description: str = ""
    icon: str = ""


class PricingPackageItem(BaseSchema):
    id: int
    title: str = ""
    price: float = 0
    original_price: Optional[float] = None
    discount: Optional[str] = None
    is_popular: bool = False
    features: List[str] = [""]
    duration: Optional[str] = None
    validity: Optional[str] = None


class TestimonialItem(BaseSchema):
    id: int
    highlight: str = ""
    quote: str = ""
    name: str = ""
    location: str = ""
    rating: Optional[float] = None
    verified: Optional[bool] = None
    date: Optional[str] = None


class FaqItem(BaseSchema):
    id: int
    question: str = ""
    answer: str = ""


class PujaFormData(BaseSchema):
    category_id: str = ""
    puja_name: str = ""
    price: str = ""
    admin_commission: str = ""
    overview: str = ""
    duration: str = ""
    main_image: str = ""
    gallery_images: List[str] = []
    puja_details: str = ""
    why_perform: str = ""
    benefits: List[str] = [""]
    who_should_book: List[str] = [""]
    why_you_should: List[WhyYouShouldItem] = []
    pricing_packages: List[PricingPackageItem] = []
    testimonials: List[TestimonialItem] = []
    faqs: List[FaqItem] = []


def _require_length(value: str, minimum: int, message: str) -> str:
    if len(value) < minimum:
        raise ValueError(message)
    return value


def _as_number(value: str) -> Optional[float]:
    try:
        return float(value)
    except ValueError:
        return None


class BasicInfoTab(BaseModel):
    category_id: str
    puja_name: str
    price: str
    admin_commission: str
    overview: str
    main_image: str

    @field_validator("category_id")
    @classmethod
    def category_required(cls, v: str) -> str:
        return _require_length(v, 1, "Category is required")

    @field_validator("puja_name")
    @classmethod
    def puja_name_length(cls, v: str) -> str:
        return _require_length(v, 3, "Puja name must be at least 3 characters")

    @field_validator("price")
    @classmethod
    def price_positive(cls, v: str) -> str:
        _require_length(v, 1, "Price is required")
        number = _as_number(v)
        if number is None or number <= 0:
            raise ValueError("Price must be a positive number")
        return v

    @field_validator("admin_commission")
    @classmethod
    def commission_range(cls, v: str) -> str:
        _require_length(v, 1, "Admin commission is required")
        number = _as_number(v)
        if number is None or not 0 <= number <= 100:
            raise ValueError("Commission must be between 0 and 100")
        return v

    @field_validator("overview")
    @classmethod
    def overview_length(cls, v: str) -> str:
        return _require_length(v, 10, "Overview must be at least 10 characters")

    @field_validator("main_image")
    @classmethod
    def image_required(cls, v: str) -> str:
        return _require_length(v, 1, "Main image is required")


class DetailsTab(BaseModel):
    puja_details: str
    why_perform: str

    @field_validator("puja_details")
    @classmethod
    def details_length(cls, v: str) -> str:
        return _require_length(v, 20, "Puja details must be at least 20 characters")

    @field_validator("why_perform")
    @classmethod
    def why_perform_length(cls, v: str) -> str:
        return _require_length(v, 20, "Why perform section must be at least 20 characters")


def _check_entries(
    entries: List[str],
    empty_message: str,
    missing_message: str,
    blank_message: str,
) -> List[str]:
    if not entries:
        raise ValueError(missing_message)
    for entry in entries:
        if not entry:
            raise ValueError(empty_message)
    if not any(entry.strip() for entry in entries):
        raise ValueError(blank_message)
    return entries


class BenefitsTab(BaseModel):
    benefits: List[str]

    @field_validator("benefits")
    @classmethod
    def benefits_present(cls, v: List[str]) -> List[str]:
        return _check_entries(
            v,
            "Benefit cannot be empty",
            "At least one benefit is required",
            "At least one valid benefit is required",
        )


class WhoShouldBookTab(BaseModel):
    who_should_book: List[str]

    @field_validator("who_should_book")
    @classmethod
    def entries_present(cls, v: List[str]) -> List[str]:
        return _check_entries(
            v,
            "Entry cannot be empty",
            "At least one entry is required",
            "At least one valid entry is required",
        )


class ReasonRule(BaseModel):
    title: str
    description: str
    icon: str

    @field_validator("title")
    @classmethod
    def title_length(cls, v: str) -> str:
        return _require_length(v, 3, "Title must be at least 3 characters")

    @field_validator("description")
    @classmethod
    def description_length(cls, v: str) -> str:
        return _require_length(v, 10, "Description must be at least 10 characters")

    @field_validator("icon")
    @classmethod
    def icon_required(cls, v: str) -> str:
        return _require_length(v, 1, "Icon is required")


class WhyYouShouldTab(BaseModel):
    why_you_should: List[ReasonRule]

    @field_validator("why_you_should")
    @classmethod
    def at_least_one(cls, v: List[ReasonRule]) -> List[ReasonRule]:
        if not v:
            raise ValueError("At least one reason is required")
        return v


class PackageRule(BaseModel):
    id: int
    title: str
    price: float
    is_popular: bool
    features: List[str]

    @field_validator("title")
    @classmethod
    def title_length(cls, v: str) -> str:
        return _require_length(v, 3, "Package title must be at least 3 characters")

    @field_validator("price")
    @classmethod
    def price_minimum(cls, v: float) -> float:
        if v < 1:
            raise ValueError("Package price must be greater than 0")
        return v

    @field_validator("features")
    @classmethod
    def features_present(cls, v: List[str]) -> List[str]:
        return _check_entries(
            v,
            "Feature cannot be empty",
            "At least one feature is required",
            "At least one valid feature is required",
        )


class PackagesTab(BaseModel):
    pricing_packages: List[PackageRule]

    @field_validator("pricing_packages")
    @classmethod
    def at_least_one(cls, v: List[PackageRule]) -> List[PackageRule]:
        if not v:
            raise ValueError("At least one package is required")
        return v


class TestimonialRule(BaseModel):
    quote: str
    name: str
    location: str

    @field_validator("quote")
    @classmethod
    def quote_length(cls, v: str) -> str:
        return _require_length(v, 10, "Quote must be at least 10 characters")

    @field_validator("name")
    @classmethod
    def name_length(cls, v: str) -> str:
        return _require_length(v, 2, "Name must be at least 2 characters")

    @field_validator("location")
    @classmethod
    def location_length(cls, v: str) -> str:
        return _require_length(v, 2, "Location must be at least 2 characters")


class TestimonialsTab(BaseModel):
    testimonials: List[TestimonialRule] = []


class FaqRule(BaseModel):
    question: str
    answer: str

    @field_validator("question")
    @classmethod
    def question_length(cls, v: str) -> str:
        return _require_length(v, 5, "Question must be at least 5 characters")

    @field_validator("answer")
    @classmethod
    def answer_length(cls, v: str) -> str:
        return _require_length(v, 10, "Answer must be at least 10 characters")


class FaqsTab(BaseModel):
    faqs: List[FaqRule] = []


class PujaDraftCreate(BaseSchema):
    puja_id: Optional[str] = None


class PujaTabUpdate(BaseSchema):
    """Partial draft data for one tab; only the provided fields are replaced."""
    data: Dict[str, Any]


class TabStatus(BaseSchema):
    index: int
    label: str
    required: bool
    valid: bool


class PujaDraftState(BaseSchema):
    draft_id: str
    puja_id: Optional[str] = None
    active_tab: int = 0
    active_label: str = ""
    tabs: List[TabStatus] = []
    data: PujaFormData = PujaFormData()
    field_errors: Dict[str, str] = {}
    updated_at: Optional[datetime] = None


class TabViolation(BaseSchema):
    tab: int
    label: str
    field: str
    message: str


# ── Astrologers: requests & views ─────────────────────────────

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MOBILE_PATTERN = re.compile(r"^\d{10}$")
ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{9,18}$")
IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]{1}$")
AADHAR_PATTERN = re.compile(r"^\d{12}$")


class AstrologerRow(BaseSchema):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    created_at: Optional[str] = None
    is_verified: bool
    status_label: str


class VerificationRequest(BaseSchema):
    is_verified: bool


class PersonalInfoUpdate(BaseSchema):
    astrologer_name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    alternate_number: Optional[str] = None
    country_phone_code: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None

    @field_validator("astrologer_name")
    @classmethod
    def name_required(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Name required")
        return v

    @field_validator("email")
    @classmethod
    def email_format(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email")
        return v

    @field_validator("phone_number")
    @classmethod
    def mobile_format(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not MOBILE_PATTERN.match(v):
            raise ValueError("10-digit mobile required")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def adult(cls, v: Optional[date]) -> Optional[date]:
        if v is None:
            return v
        today = date.today()
        age = today.year - v.year - ((today.month, today.day) < (v.month, v.day))
        if age < 18:
            raise ValueError("Must be 18+")
        return v

    @field_validator("password")
    @classmethod
    def password_length(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "PersonalInfoUpdate":
        if self.password is not None and self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class BankDetailsUpdate(BaseSchema):
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    IFSC_code: Optional[str] = None
    account_type: Optional[str] = None
    account_name: Optional[str] = None
    panCard: Optional[str] = None
    aadharNumber: Optional[str] = None

    @field_validator("account_number")
    @classmethod
    def account_number_format(cls, v: Optional[str]) -> Optional[str]:
        if v and not ACCOUNT_NUMBER_PATTERN.match(v):
            raise ValueError("Invalid account number")
        return v

    @field_validator("IFSC_code")
    @classmethod
    def ifsc_format(cls, v: Optional[str]) -> Optional[str]:
        if v and not IFSC_PATTERN.match(v):
            raise ValueError("Invalid IFSC code")
        return v

    @field_validator("panCard")
    @classmethod
    def pan_format(cls, v: Optional[str]) -> Optional[str]:
        if v and not PAN_PATTERN.match(v.upper()):
            raise ValueError("Invalid PAN card")
        return v.upper() if v else v

    @field_validator("aadharNumber")
    @classmethod
    def aadhar_format(cls, v: Optional[str]) -> Optional[str]:
        if v and not AADHAR_PATTERN.match(v):
            raise ValueError("Invalid Aadhar number")
        return v


class AstrologerProfileUpdate(BaseSchema):
    personal: Optional[PersonalInfoUpdate] = None
    bank: Optional[BankDetailsUpdate] = None


class ProfileUpdateResponse(BaseSchema):
    message: str
    changed_fields: List[str]


class PriceCreate(BaseSchema):
    duration_id: str = Field(..., min_length=1)
    price: float

    @field_validator("price")
    @classmethod
    def price_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Please enter a valid price")
        return v


class PricedDuration(BaseSchema):
    duration_id: Optional[str] = None
    slot_duration: Optional[int] = None
    price: float


class DurationOption(BaseSchema):
    id: Optional[str] = None
    slot_duration: int


class ConsultationPricesView(BaseSchema):
    prices: List[PricedDuration]
    available_durations: List[DurationOption]


class FirstTimeOfferView(BaseSchema):
    mode: Literal["global", "custom"]
    prices: List[PricedDuration]
    available_durations: List[DurationOption]
    global_offer_price: Optional[float] = None


class PricingModeUpdate(BaseSchema):
    mode: Literal["global", "custom"]


class GlobalOfferPrice(BaseSchema):
    offer_price: float

    @field_validator("offer_price")
    @classmethod
    def positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Offer price must be greater than 0")
        return v


# ── Admins ────────────────────────────────────────────────────

class AdminView(BaseSchema):
    id: Optional[str] = None
    username: str
    email: Optional[str] = None
    role: str
    is_active: bool
    assigned_routes: List[str] = []
    created_at: Optional[str] = None
    last_login: Optional[str] = None


class AdminStats(BaseSchema):
    total: int
    active: int
    inactive: int


class AdminsResponse(BaseSchema):
    admins: List[AdminView]
    stats: AdminStats


class AdminCreateRequest(BaseSchema):
    username: str = Field(..., min_length=1)
    password: str

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class ChangePasswordRequest(BaseSchema):
    current_password: str = Field(..., min_length=1)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class AdminPasswordReset(BaseSchema):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class PasswordChangeVerification(BaseSchema):
    token: str = Field(..., min_length=1)


class AuditLogView(BaseSchema):
    id: Any
    actor: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None


# ── Sidebar ───────────────────────────────────────────────────

class SidebarRouteView(BaseSchema):
    id: Optional[str] = None
    name: str
    path: Optional[str] = None
    icon: Optional[str] = None
    order: int = 0
    sub_routes: List["SidebarRouteView"] = []


SidebarRouteView.model_rebuild()


class SidebarResponse(BaseSchema):
    source: Literal["backend", "fallback"]
    routes: List[SidebarRouteView]


# Icon components the admin frontend can render
ROUTE_ICONS = (
    "AstrologerRouteSvg",
    "CustomerRouteSvg",
    "LiveRouteSvg",
    "SkillRouteSvg",
    "PoojaRouteSvg",
    "RatingRouteSvg",
    "BlogsRouteSvg",
    "NotificationRouteSvg",
    "OtherRouteSvg",
    "RechargeRouteSvg",
    "GiftRouteSvg",
    "AnnouncementRouteSvg",
    "MainExpertiesRouteSvg",
    "BannerRouteSvg",
    "ReviewRouteSvg",
    "DashboardRouteSvg",
)


class RouteUpsert(BaseSchema):
    name: str
    path: Optional[str] = None
    icon: str
    order: int = 0
    description: Optional[str] = None

    @field_validator("name", "icon")
    @classmethod
    def required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Please fill required fields")
        return v

    @field_validator("icon")
    @classmethod
    def known_icon(cls, v: str) -> str:
        if v not in ROUTE_ICONS:
            raise ValueError(f"Unknown icon {v}")
        return v


class FolderCreate(BaseSchema):
    folder_name: str
    route_ids: List[str]

    @model_validator(mode="after")
    def folder_complete(self) -> "FolderCreate":
        if not self.folder_name.strip() or not self.route_ids:
            raise ValueError("Enter folder name and select routes")
        return self


class RouteAssignment(BaseSchema):
    admin_id: str = Field(..., min_length=1)
    route_ids: List[str] = []
