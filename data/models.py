"""
Data Models for AutoPublisher

This module contains data classes and enumerations used throughout the application.
Rows coming back from the store are turned into these objects by the ``from_row``
constructors, which also decode the JSON columns into plain Python containers.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

from config import settings
from utils.logger import get_logger

logger = get_logger(__name__)

TWO_PLACES = Decimal("0.01")


class SubscriptionTier(str, Enum):
    TRIAL = "trial"
    HOBBYIST = "hobbyist"
    PROFESSIONAL = "professional"


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class QueueStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TitleStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ToneOfVoice(str, Enum):
    CONVERSATIONAL = "conversational"
    FORMAL = "formal"
    HUMOROUS = "humorous"
    STORYTELLING = "storytelling"


class WritingStyle(str, Enum):
    """Stored codes for the three writing frameworks."""
    PAS = "pas"             # problem-agitate-solution
    AIDA = "aida"           # attention-interest-desire-action
    LISTICLE = "listicle"


class Severity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


def decode_json(value: Any, default: Any, column: str = "") -> Any:
    """
    Decode a JSON column into the expected container type.

    Already-decoded values are accepted. Malformed JSON or a value of the wrong
    container type decodes to ``default`` with a warning.
    """
    if value is None or value == "":
        return default
    if isinstance(value, (list, dict)):
        decoded = value
    else:
        try:
            decoded = json.loads(value)
        except (TypeError, ValueError):
            logger.warning(f"Malformed JSON in column '{column}', using empty value")
            return default
    if not isinstance(decoded, type(default)):
        logger.warning(f"Unexpected JSON type in column '{column}': {type(decoded).__name__}")
        return default
    return decoded


def _enum_or_default(enum_cls, value, default, column: str):
    if value is None or value == "":
        return default
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning(f"Unknown value '{value}' in column '{column}', using '{default.value}'")
        return default


def parse_interval_hours(value: Any, legacy_schedule: Optional[str] = None) -> Decimal:
    """
    Normalize a campaign's publishing interval.

    Args:
        value: The stored interval in hours (Decimal, float, str or None)
        legacy_schedule: Old-style schedule value such as "24h", used when value is missing

    Returns:
        Decimal: Interval with two-decimal precision, clamped into the allowed range
    """
    min_hours = Decimal(settings.MIN_INTERVAL_HOURS)
    max_hours = Decimal(settings.MAX_INTERVAL_HOURS)

    hours = None
    if value is not None and value != "":
        try:
            hours = Decimal(str(value))
        except InvalidOperation:
            logger.warning(f"Invalid interval value '{value}', falling back")

    if hours is None and legacy_schedule:
        try:
            hours = Decimal(str(legacy_schedule).strip().lower().rstrip("h"))
        except InvalidOperation:
            logger.warning(f"Invalid legacy schedule '{legacy_schedule}', falling back")

    if hours is None or not hours.is_finite():
        hours = Decimal(settings.DEFAULT_INTERVAL_HOURS)

    hours = hours.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if hours < min_hours or hours > max_hours:
        clamped = min(max(hours, min_hours), max_hours)
        logger.warning(f"Interval of {hours}h is out of range, clamping to {clamped}h")
        hours = clamped
    return hours


@dataclass
class User:
    """Campaign owner and the counters used for quota decisions."""
    id: int
    subscription_tier: Optional[str]          # Raw value; unknown tiers are denied
    posts_published_this_month: int = 0
    total_posts_published: int = 0
    max_concurrent_campaigns: int = 1
    is_active: bool = True
    email: Optional[str] = None

    @property
    def tier(self) -> Optional[SubscriptionTier]:
        try:
            return SubscriptionTier(self.subscription_tier)
        except ValueError:
            return None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        return cls(
            id=row["id"],
            subscription_tier=row.get("subscription_tier"),
            posts_published_this_month=row.get("posts_published_this_month") or 0,
            total_posts_published=row.get("total_posts_published") or 0,
            max_concurrent_campaigns=row.get("max_concurrent_campaigns") or 1,
            is_active=bool(row.get("is_active", True)),
            email=row.get("email"),
        )


@dataclass
class PublishTarget:
    """A connected WordPress site. The password stays encrypted until a request is made."""
    id: int
    user_id: int
    site_name: str
    site_url: str
    username: str
    password_encrypted: str
    api_endpoint: str
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PublishTarget":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            site_name=row.get("site_name") or "",
            site_url=row.get("site_url") or "",
            username=row.get("username") or "",
            password_encrypted=row.get("password_encrypted") or "",
            api_endpoint=row.get("api_endpoint") or "",
            is_active=bool(row.get("is_active", True)),
        )


@dataclass
class Campaign:
    """A recurring content-production job."""
    id: int
    user_id: int
    topic: str
    context: str = ""
    tone_of_voice: ToneOfVoice = ToneOfVoice.CONVERSATIONAL
    writing_style: WritingStyle = WritingStyle.PAS
    imperfection_list: List[str] = field(default_factory=list)
    content_types: List[str] = field(default_factory=list)    # Empty means every type
    content_type_variables: Dict[str, str] = field(default_factory=dict)
    interval_hours: Decimal = Decimal("24.00")
    next_publish_at: Optional[datetime] = None
    wordpress_site_id: Optional[int] = None
    status: CampaignStatus = CampaignStatus.ACTIVE

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=int(self.interval_hours * 3600))

    def next_run_after(self, now: datetime) -> datetime:
        """The next-run timestamp for a processing attempt made at ``now``."""
        return now + self.interval

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Campaign":
        content_types = decode_json(row.get("content_types"), [], "content_types")
        variables = decode_json(row.get("content_type_variables"), {}, "content_type_variables")
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            topic=row.get("topic") or "",
            context=row.get("context") or "",
            tone_of_voice=_enum_or_default(ToneOfVoice, row.get("tone_of_voice"),
                                           ToneOfVoice.CONVERSATIONAL, "tone_of_voice"),
            writing_style=_enum_or_default(WritingStyle, row.get("writing_style"),
                                           WritingStyle.PAS, "writing_style"),
            imperfection_list=[str(t) for t in decode_json(row.get("imperfection_list"), [], "imperfection_list")],
            content_types=[str(t) for t in content_types][:settings.MAX_CONTENT_TYPES_PER_CAMPAIGN],
            content_type_variables={str(k): "" if v is None else str(v) for k, v in variables.items()},
            interval_hours=parse_interval_hours(row.get("schedule_hours"), row.get("schedule")),
            next_publish_at=row.get("next_publish_at"),
            wordpress_site_id=row.get("wordpress_site_id"),
            status=_enum_or_default(CampaignStatus, row.get("status"),
                                    CampaignStatus.PAUSED, "status"),
        )


@dataclass
class TitleQueueItem:
    """A candidate headline awaiting approval or consumption."""
    id: Optional[int]
    campaign_id: int
    title: str
    keywords: List[str] = field(default_factory=list)
    status: TitleStatus = TitleStatus.PENDING
    generated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    used_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TitleQueueItem":
        return cls(
            id=row["id"],
            campaign_id=row["campaign_id"],
            title=row.get("title") or "",
            keywords=decode_json(row.get("keywords"), [], "keywords"),
            status=_enum_or_default(TitleStatus, row.get("status"), TitleStatus.PENDING, "status"),
            generated_at=row.get("generated_at"),
            approved_at=row.get("approved_at"),
            used_at=row.get("used_at"),
        )


@dataclass
class ContentQueueItem:
    """One attempt to generate and publish a single post."""
    id: int
    campaign_id: int
    status: QueueStatus = QueueStatus.PENDING
    title_queue_id: Optional[int] = None
    title: Optional[str] = None              # Approved title at claim time, generated title after
    body: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    content_type: Optional[str] = None
    featured_image_url: Optional[str] = None
    wordpress_post_id: Optional[int] = None
    wordpress_post_url: Optional[str] = None
    error_message: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ContentQueueItem":
        return cls(
            id=row["id"],
            campaign_id=row["campaign_id"],
            status=_enum_or_default(QueueStatus, row.get("status"), QueueStatus.PENDING, "status"),
            title_queue_id=row.get("title_queue_id"),
            title=row.get("title"),
            body=row.get("generated_content"),
            keywords=decode_json(row.get("keywords"), [], "keywords"),
            content_type=row.get("content_type"),
            featured_image_url=row.get("featured_image_url"),
            wordpress_post_id=row.get("wordpress_post_id"),
            wordpress_post_url=row.get("wordpress_post_url"),
            error_message=row.get("error_message"),
            scheduled_for=row.get("scheduled_for"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            created_at=row.get("created_at"),
        )


@dataclass
class GeneratedContent:
    """Output of one content generation call."""
    title: str
    body: str
    keywords: List[str] = field(default_factory=list)
    content_type: Optional[str] = None
    image_prompt: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def word_count(self) -> int:
        return len(self.body.split())


@dataclass
class PublishResult:
    """Outcome of a successful publish. Non-fatal problems are listed in warnings."""
    post_id: int
    post_url: Optional[str]
    featured_media_id: Optional[int] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class ConnectionTestResult:
    ok: bool
    identity: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class SiteInfo:
    """Public details of a WordPress site and its post categories."""
    ok: bool
    name: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    language: Optional[str] = None
    categories: List[Dict[str, Any]] = field(default_factory=list)   # id, name, count
    reason: Optional[str] = None


@dataclass
class CampaignEvent:
    """A row in the logs table."""
    event_type: str
    message: str
    severity: Severity = Severity.INFO
    campaign_id: Optional[int] = None
    user_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
