from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from domain import OrderStatus, OrderType


class ApiModel(BaseModel):
    """Accepts snake_case or camelCase input and renders camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageType(str, Enum):
    INQUIRY = "inquiry"
    NEGOTIATION = "negotiation"
    UPDATE = "update"
    ISSUE = "issue"
    GENERAL = "general"


class RejectReason(str, Enum):
    PRICE = "price"
    QUANTITY = "quantity"
    TIMING = "timing"
    QUALITY = "quality"
    OTHER = "other"


class DeliveryCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    DAMAGED = "damaged"


class DisputeType(str, Enum):
    QUALITY = "quality"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    OTHER = "other"


class DisputeSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RequestedResolution(str, Enum):
    REFUND = "refund"
    REPLACEMENT = "replacement"
    DISCOUNT = "discount"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class Coordinates(ApiModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DeliveryAddress(ApiModel):
    street: str = Field(..., min_length=1, description="Street address")
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1, description="ZIP or postal code")
    coordinates: Optional[Coordinates] = None


class QualityRequirements(ApiModel):
    grade: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None
    certifications: Optional[List[str]] = None


class OrderItemCreate(ApiModel):
    commodity_id: str = Field(..., min_length=1)
    inventory_id: Optional[str] = Field(default=None, description="Inventory lot, for SELL orders")
    quantity: Decimal = Field(..., gt=0)
    unit: str = Field(..., min_length=1)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    quality_requirements: Optional[QualityRequirements] = None
    notes: Optional[str] = None


class OrderItemUpdate(ApiModel):
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    quality_requirements: Optional[QualityRequirements] = None
    notes: Optional[str] = None


class OrderCreate(ApiModel):
    type: OrderType
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    delivery_date: datetime
    delivery_address: DeliveryAddress
    items: List[OrderItemCreate] = Field(..., min_length=1)
    payment_terms: Optional[str] = None
    special_instructions: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OrderUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    delivery_date: Optional[datetime] = None
    delivery_address: Optional[DeliveryAddress] = None
    delivery_location: Optional[str] = None
    payment_terms: Optional[str] = None
    special_instructions: Optional[str] = None


class ProposedItemChange(ApiModel):
    item_id: str
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    delivery_date: Optional[datetime] = None


class ProposedChanges(ApiModel):
    items: Optional[List[ProposedItemChange]] = None


class AcceptOrderRequest(ApiModel):
    message: Optional[str] = None
    proposed_changes: Optional[ProposedChanges] = None
    requires_negotiation: bool = False


class RejectOrderRequest(ApiModel):
    reason: RejectReason
    message: str = Field(..., min_length=1)


class CounterOfferChanges(ApiModel):
    total_amount: Optional[Decimal] = Field(default=None, gt=0)
    delivery_date: Optional[datetime] = None
    items: Optional[List[ProposedItemChange]] = None


class CounterOfferRequest(ApiModel):
    message: str = Field(..., min_length=1)
    changes: CounterOfferChanges
    expires_at: datetime


class SortField(str, Enum):
    PRICE = "price"
    DELIVERY_DATE = "deliveryDate"
    RATING = "rating"
    NEWEST = "newest"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PriceRange(ApiModel):
    min: Optional[Decimal] = Field(default=None, ge=0)
    max: Optional[Decimal] = Field(default=None, ge=0)


class DeliveryWindow(ApiModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class SearchFilters(ApiModel):
    commodities: Optional[List[str]] = None
    price_range: Optional[PriceRange] = None
    delivery_window: Optional[DeliveryWindow] = None


class SearchSort(ApiModel):
    field: SortField = SortField.NEWEST
    direction: SortDirection = SortDirection.DESC


class OrderSearchRequest(ApiModel):
    filters: Optional[SearchFilters] = None
    sort: Optional[SearchSort] = None


class TrackingInfo(ApiModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    current_location: Optional[str] = None
    batch_numbers: Optional[List[str]] = None
    quality_test_results: Optional[Dict[str, Any]] = None
    processing_notes: Optional[str] = None


class StartFulfillmentRequest(ApiModel):
    estimated_completion_date: datetime
    notes: Optional[str] = None
    tracking_info: Optional[TrackingInfo] = None


class DeliveryConfirmation(ApiModel):
    delivered_at: datetime
    received_by: str = Field(..., min_length=1)
    condition: DeliveryCondition
    notes: Optional[str] = None


class QualityAssessment(ApiModel):
    meets_specifications: bool
    actual_grade: Optional[str] = None
    issues: Optional[str] = None


class CompleteOrderRequest(ApiModel):
    delivery_confirmation: DeliveryConfirmation
    quality_assessment: QualityAssessment


class MessageCreate(ApiModel):
    content: str = Field(..., min_length=1)
    type: MessageType = MessageType.GENERAL
    attachments: List[AnyHttpUrl] = Field(default_factory=list)
    is_urgent: bool = False


class DisputeCreate(ApiModel):
    type: DisputeType
    description: str = Field(..., min_length=1)
    evidence: List[AnyHttpUrl] = Field(default_factory=list)
    requested_resolution: RequestedResolution
    severity: DisputeSeverity


class DisputeRespond(ApiModel):
    response: str = Field(..., min_length=1)
    evidence: List[AnyHttpUrl] = Field(default_factory=list)
    proposed_resolution: Optional[str] = None


class DisputeResolve(ApiModel):
    resolution: str = Field(..., min_length=1)
    compensation: Optional[Decimal] = Field(default=None, ge=0)
    terms: Optional[str] = None


# ---------------------------------------------------------------------------
# Resource documents
# ---------------------------------------------------------------------------


class ResourceIdentifier(ApiModel):
    type: str
    id: str


class Relationship(ApiModel):
    data: Optional[ResourceIdentifier] = None


class OrderRelationship(str, Enum):
    BUYER = "buyer"
    SUPPLIER = "supplier"


class RelationshipLinks(ApiModel):
    self: str
    related: str


class RelationshipDocument(ApiModel):
    data: Optional[ResourceIdentifier] = None
    links: RelationshipLinks


class PageMeta(ApiModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderItemAttributes(ApiModel):
    commodity_id: str
    inventory_id: Optional[str]
    quantity: float
    unit: str
    unit_price: float
    line_total: float
    quality_requirements: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: datetime


class OrderItemResource(ApiModel):
    type: str = "order-items"
    id: str
    attributes: OrderItemAttributes
    relationships: Dict[str, Relationship]


class CounterOfferView(ApiModel):
    message: str
    changes: Dict[str, Any]
    expires_at: datetime
    expired: bool
    proposed_at: datetime
    proposed_by: str
    proposed_by_org_id: str
    message_id: Optional[str] = None


class OrderAttributes(ApiModel):
    order_number: str
    title: str
    description: Optional[str]
    type: OrderType
    status: OrderStatus
    delivery_date: datetime
    delivery_location: Optional[str]
    delivery_address: Dict[str, Any]
    total_price: float
    terms: Dict[str, Any]
    is_public: bool
    confirmed_at: Optional[datetime]
    counter_offer: Optional[CounterOfferView] = None
    metadata: Dict[str, Any]
    items: List[OrderItemResource]
    created_at: datetime
    updated_at: datetime
    version: int


class OrderResource(ApiModel):
    type: str = "orders"
    id: str
    attributes: OrderAttributes
    relationships: Dict[str, Relationship]


class OrderDocument(ApiModel):
    data: OrderResource


class OrderCollection(ApiModel):
    data: List[OrderResource]
    meta: PageMeta


class OrderItemDocument(ApiModel):
    data: OrderItemResource


class OrderItemCollection(ApiModel):
    data: List[OrderItemResource]


class MessageAttributes(ApiModel):
    content: str
    type: str
    attachments: List[str]
    is_urgent: bool
    is_read: bool
    read_at: Optional[datetime]
    counter_offer: Optional[Dict[str, Any]] = None
    created_at: datetime


class MessageResource(ApiModel):
    type: str = "messages"
    id: str
    attributes: MessageAttributes
    relationships: Dict[str, Relationship]


class MessageDocument(ApiModel):
    data: MessageResource


class MessageCollection(ApiModel):
    data: List[MessageResource]
    meta: PageMeta


class DisputeResponseView(ApiModel):
    responded_by: str
    responded_at: datetime
    response: str
    evidence: List[str]
    proposed_resolution: Optional[str] = None


class DisputeResolutionView(ApiModel):
    resolved_by: str
    resolved_at: datetime
    resolution: str
    compensation: Optional[float] = None
    terms: Optional[str] = None


class DisputeAttributes(ApiModel):
    type: str
    description: str
    evidence: List[str]
    requested_resolution: str
    severity: str
    status: str
    responses: List[DisputeResponseView]
    resolution: Optional[DisputeResolutionView] = None
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None


class DisputeResource(ApiModel):
    type: str = "disputes"
    id: str
    attributes: DisputeAttributes
    relationships: Dict[str, Relationship]


class DisputeDocument(ApiModel):
    data: DisputeResource


class DisputeCollection(ApiModel):
    data: List[DisputeResource]


class TimelineEvent(ApiModel):
    id: str
    order_id: str
    status: str
    message: str
    actor_id: Optional[str] = None
    created_at: datetime


class TimelineDocument(ApiModel):
    data: List[TimelineEvent]
    links: Dict[str, str]


class TrackingAttributes(ApiModel):
    order_id: str
    current_status: OrderStatus
    location: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    last_updated: datetime


class TrackingDocument(ApiModel):
    data: TrackingAttributes
    links: Dict[str, str]


class HealthResponse(BaseModel):
    status: str
    store_backend: str
