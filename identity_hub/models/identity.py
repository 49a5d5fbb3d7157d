"""
Core Data Models for Identity Hub

These models define the schemas for the identity graph:
identities, the services they own, their email accounts and the
per-identity module records (tasks, subscriptions, admin links...).

DESIGN DECISION: Models use camelCase aliases on the wire and at rest.
Stored documents keep the field names both write paths (forms and
agent commands) already speak, while Python code uses snake_case.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid4())


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_document(self) -> dict:
        """Serialize to a storable, JSON-safe document."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class IdentityType(str, Enum):
    """Kind of context an identity represents."""
    PERSONAL = "personal"
    BUSINESS = "business"
    PROJECT = "project"
    OTHER = "other"


class BillingCycle(str, Enum):
    """
    How often a service bills.

    Only the first four are recurring; ONE_TIME and NONE never roll forward.
    """
    MONTHLY = "monthly"
    YEARLY = "yearly"
    QUARTERLY = "quarterly"
    WEEKLY = "weekly"
    ONE_TIME = "one-time"
    NONE = "none"


RECURRING_CYCLES = frozenset({
    BillingCycle.MONTHLY,
    BillingCycle.YEARLY,
    BillingCycle.QUARTERLY,
    BillingCycle.WEEKLY,
})


class ServiceStatus(str, Enum):
    """Lifecycle status of a service."""
    ACTIVE = "active"
    TRIAL = "trial"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    EXPIRED = "expired"
    ARCHIVED = "archived"


BILLABLE_STATUSES = frozenset({ServiceStatus.ACTIVE, ServiceStatus.TRIAL})
INACTIVE_STATUSES = frozenset({ServiceStatus.CANCELLED, ServiceStatus.ARCHIVED})


class ModuleKey(str, Enum):
    """Fixed per-identity module categories."""
    EMAIL = "email"
    SERVICES = "services"
    SUBSCRIPTIONS = "subscriptions"
    TASKS = "tasks"
    ADMIN_LINKS = "adminLinks"


class SubscriptionFrequency(str, Enum):
    """Billing frequency of a subscription module record."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# IDENTITY
# =============================================================================

class Identity(CamelModel):
    """
    A named context (person, business, project) that owns emails and services.

    Name uniqueness is NOT enforced here. The command executor checks it
    case-insensitively at creation time only.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name, also the join key for agent commands"
    )
    type: IdentityType = Field(default=IdentityType.PERSONAL)
    description: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def name_key(self) -> str:
        """Normalized form used by the name index."""
        return normalize_name(self.name)


def normalize_name(name: str) -> str:
    """Case-insensitive, whitespace-insensitive form of an identity name."""
    return " ".join(name.split()).casefold()


class EmailAccount(CamelModel):
    """An email address owned by an identity."""

    id: str = Field(default_factory=new_id)
    identity_id: Optional[str] = None
    address: str = Field(..., min_length=3, max_length=320)
    label: str = Field(default="Primary", max_length=100)
    provider: str = Field(default="other")
    is_primary: bool = True

    @field_validator('address')
    @classmethod
    def lowercase_address(cls, v: str) -> str:
        return v.lower()


_EMAIL_PROVIDERS = ("gmail", "outlook", "yahoo", "proton", "icloud")


def detect_email_provider(address: str) -> str:
    """Provider named in the address, or "other"."""
    address = address.lower()
    return next((p for p in _EMAIL_PROVIDERS if p in address), "other")


# =============================================================================
# SERVICE
# =============================================================================

class ServiceCost(CamelModel):
    """Cost of a service per billing cycle."""

    amount: Decimal = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()


class Service(CamelModel):
    """
    A trackable paid or free external account.

    CANONICAL FIELDS: profile_ids, website_url, billing_email_id.
    COMPATIBILITY FIELDS: owner_identity_ids, identity_id, login_url, email_id.
    The reconciler keeps both sets consistent on every write; the
    storage adapter upgrades documents written before schema version 2.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(default="Other", max_length=100)
    cost: Optional[ServiceCost] = None
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    status: ServiceStatus = ServiceStatus.ACTIVE
    next_billing_date: Optional[date] = None

    # None means "never set"; "" means "user cleared it"
    login_email: Optional[str] = None

    website_url: Optional[str] = None
    login_url: Optional[str] = None

    profile_ids: list[str] = Field(default_factory=list)
    owner_identity_ids: list[str] = Field(default_factory=list)
    identity_id: Optional[str] = None

    billing_email_id: Optional[str] = None
    email_id: Optional[str] = None

    notes: Optional[str] = Field(default=None, max_length=5000)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    schema_version: int = 2

    @property
    def owner_ids(self) -> list[str]:
        """Owner list, read from whichever alias is populated."""
        if self.profile_ids:
            return list(self.profile_ids)
        if self.owner_identity_ids:
            return list(self.owner_identity_ids)
        if self.identity_id:
            return [self.identity_id]
        return []

    @property
    def url(self) -> Optional[str]:
        return self.website_url if self.website_url is not None else self.login_url

    @property
    def is_recurring(self) -> bool:
        return self.billing_cycle in RECURRING_CYCLES


class ServicePatch(CamelModel):
    """
    A partial service mutation, as submitted by a form or the agent.

    Whether a field was SUPPLIED is read from `model_fields_set`,
    so an explicit null is distinguishable from an absent key.
    """

    name: Optional[str] = None
    category: Optional[str] = None
    cost: Optional[ServiceCost] = None
    billing_cycle: Optional[BillingCycle] = None
    status: Optional[ServiceStatus] = None
    next_billing_date: Optional[date] = None
    login_email: Optional[str] = None
    website_url: Optional[str] = None
    login_url: Optional[str] = None
    profile_ids: Optional[list[str]] = None
    owner_identity_ids: Optional[list[str]] = None
    identity_id: Optional[str] = None
    billing_email_id: Optional[str] = None
    email_id: Optional[str] = None
    notes: Optional[str] = None

    def supplied(self, field_name: str) -> bool:
        """True if the caller included this field, even as null."""
        return field_name in self.model_fields_set

    def supplied_updates(self) -> dict:
        """Only the fields the caller included, keyed by Python name."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
        }


# =============================================================================
# MODULE RECORDS (per identity)
# =============================================================================

class TaskRecord(CamelModel):
    """A to-do item attached to an identity."""

    id: str = Field(default_factory=new_id)
    title: str = Field(..., min_length=1, max_length=500)
    is_done: bool = False
    due_date: Optional[date] = None
    notes: Optional[str] = None


class SubscriptionRecord(CamelModel):
    """A recurring payment attached to an identity."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="GBP", min_length=3, max_length=3)
    frequency: SubscriptionFrequency = SubscriptionFrequency.MONTHLY
    next_billing_date: Optional[date] = None

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()


class ServiceModuleRecord(CamelModel):
    """A lightweight service entry inside an identity's services module."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None


class AdminLinkRecord(CamelModel):
    """A shortcut to an admin panel or external tool."""

    id: str = Field(default_factory=new_id)
    label: str = Field(..., min_length=1, max_length=200)
    url: str = Field(..., min_length=1)
    category: Optional[str] = None
    notes: Optional[str] = None


class EmailRecord(CamelModel):
    """A message summary shown in an identity's email module."""

    id: str = Field(default_factory=new_id)
    sender: str
    subject: str
    date: Optional[datetime] = None
    preview: str = ""
    read: bool = False


MODULE_RECORD_TYPES: dict[ModuleKey, type[CamelModel]] = {
    ModuleKey.EMAIL: EmailRecord,
    ModuleKey.SERVICES: ServiceModuleRecord,
    ModuleKey.SUBSCRIPTIONS: SubscriptionRecord,
    ModuleKey.TASKS: TaskRecord,
    ModuleKey.ADMIN_LINKS: AdminLinkRecord,
}


class IdentityModules(CamelModel):
    """All module records of one identity, stored as a single document."""

    identity_id: str
    email: list[EmailRecord] = Field(default_factory=list)
    services: list[ServiceModuleRecord] = Field(default_factory=list)
    subscriptions: list[SubscriptionRecord] = Field(default_factory=list)
    tasks: list[TaskRecord] = Field(default_factory=list)
    admin_links: list[AdminLinkRecord] = Field(default_factory=list)

    def records(self, key: ModuleKey) -> list:
        return getattr(self, _MODULE_ATTRS[key])

    def open_tasks(self) -> list[TaskRecord]:
        return [t for t in self.tasks if not t.is_done]


_MODULE_ATTRS = {
    ModuleKey.EMAIL: "email",
    ModuleKey.SERVICES: "services",
    ModuleKey.SUBSCRIPTIONS: "subscriptions",
    ModuleKey.TASKS: "tasks",
    ModuleKey.ADMIN_LINKS: "admin_links",
}
