"""
Data Layer Protocol Definitions

This module defines typing.Protocol interfaces for data layer operations.
These protocols enable dependency injection for database operations,
making the scheduler testable without real database connections.

Protocols defined:
- CampaignStore: Campaigns, users, sites, title/content queues and event logs
"""

from typing import Protocol, Optional, List, Dict
from datetime import datetime

from data.models import (
    Campaign,
    CampaignEvent,
    ContentQueueItem,
    PublishResult,
    PublishTarget,
    TitleQueueItem,
    TitleStatus,
    User,
)


class CampaignStore(Protocol):
    """Protocol defining the storage operations used by the scheduling pipeline.

    Implementations are the single source of truth for campaign state. Read
    operations return None or an empty list on failure; write operations return
    False or 0. No method raises for database errors.
    """

    def get_due_campaigns(self, now: datetime, limit: int) -> List[Campaign]:
        """Active campaigns with next-run <= now, an active site and an active owner.

        Ordered by next-run ascending, at most ``limit`` rows.
        """
        ...

    def get_user(self, user_id: int) -> Optional[User]:
        ...

    def get_site(self, site_id: int) -> Optional[PublishTarget]:
        ...

    def list_active_sites(self) -> List[PublishTarget]:
        ...

    def claim_campaign(
        self,
        campaign: Campaign,
        now: datetime,
        next_run: datetime
    ) -> Optional[ContentQueueItem]:
        """Atomically claim the campaign's current cycle.

        In one transaction: advance next-run to ``next_run`` only if the campaign is
        still active and due at ``now``, then create the queue item in_progress
        linked to the oldest approved, unused title.

        Returns:
            The claimed queue item, or None when no row matched (another pass owns
            this cycle) or the transaction failed.
        """
        ...

    def reschedule_campaign(self, campaign_id: int, next_run: datetime, now: datetime) -> bool:
        """Unconditionally set next-run."""
        ...

    def update_queue_content(self, item_id: int, title: str, body: str,
                             keywords: List[str], content_type: Optional[str]) -> bool:
        ...

    def update_queue_image(self, item_id: int, image_url: Optional[str]) -> bool:
        ...

    def complete_queue_item(
        self,
        item_id: int,
        result: PublishResult,
        user_id: int,
        title_queue_id: Optional[int],
        now: datetime
    ) -> bool:
        """Mark an in_progress item completed, increment the owner's monthly and
        lifetime counters and mark the title used, all in one transaction.

        Returns:
            False (and nothing changes) if the item was no longer in_progress.
        """
        ...

    def fail_queue_item(self, item_id: int, error_message: str, now: datetime) -> bool:
        """Mark an in_progress item failed."""
        ...

    def log_event(self, event: CampaignEvent) -> bool:
        ...

    def fail_stuck_items(self, cutoff: datetime, now: datetime, message: str) -> int:
        """Fail in_progress items with started_at < cutoff. Returns the row count."""
        ...

    def delete_failed_before(self, cutoff: datetime) -> int:
        """Delete failed items with created_at < cutoff."""
        ...

    def delete_completed_before(self, cutoff: datetime) -> int:
        """Delete completed items with completed_at < cutoff."""
        ...

    def delete_logs_before(self, cutoff: datetime, severities: List[str]) -> int:
        """Delete log rows of the given severities with created_at < cutoff."""
        ...

    def reset_period_counters(self, tiers: List[str]) -> int:
        """Zero posts_published_this_month for users on the given tiers."""
        ...

    def add_titles(self, campaign_id: int, titles: List[TitleQueueItem]) -> List[TitleQueueItem]:
        """Insert pending title items and return them with ids assigned."""
        ...

    def get_title(self, title_id: int) -> Optional[TitleQueueItem]:
        ...

    def set_title_status(self, title_id: int, status: TitleStatus, now: datetime) -> bool:
        ...

    def get_titles(self, campaign_id: int, status: Optional[TitleStatus] = None) -> List[TitleQueueItem]:
        ...

    def get_queue_stats(self, since: datetime) -> Dict[str, int]:
        """Counts of content queue items per status created at or after ``since``."""
        ...
