"""
Title Queue Service

Manages the headline pipeline for a campaign: titles are generated (or typed in)
as pending, reviewed into approved or rejected, and approved titles are picked
up by the scheduler oldest approval first.
"""

from typing import List, Optional

from config import settings
from data.models import Campaign, TitleQueueItem, TitleStatus
from data.protocols import CampaignStore
from services.protocols import ContentGeneratorProtocol
from utils.helpers import extract_keywords, utcnow
from utils.logger import get_logger

logger = get_logger(__name__)


class TitleQueueService:
    """Generate, enter and review queued titles."""

    def __init__(self, store: CampaignStore, generator: ContentGeneratorProtocol, clock=utcnow):
        self.store = store
        self.generator = generator
        self.clock = clock

    def _new_item(self, campaign_id: int, title: str) -> TitleQueueItem:
        return TitleQueueItem(
            id=None,
            campaign_id=campaign_id,
            title=title,
            keywords=extract_keywords(title, settings.MIN_KEYWORD_LENGTH, settings.MAX_KEYWORDS),
            status=TitleStatus.PENDING,
            generated_at=self.clock(),
        )

    def generate_titles(self, campaign: Campaign, count: int = settings.DEFAULT_TITLE_COUNT) -> List[TitleQueueItem]:
        """
        Generate titles for a campaign and queue them as pending.

        Args:
            campaign: The campaign
            count: Number of titles to request

        Returns:
            List[TitleQueueItem]: The queued items

        Raises:
            GenerationError: If the provider call fails
        """
        titles = self.generator.generate_titles(campaign, count)
        if not titles:
            logger.warning(f"No titles generated for campaign {campaign.id}")
            return []

        items = self.store.add_titles(campaign.id, [self._new_item(campaign.id, t) for t in titles])
        logger.info(f"Queued {len(items)} generated titles for campaign {campaign.id}")
        return items

    def add_title(self, campaign_id: int, title: str) -> Optional[TitleQueueItem]:
        """
        Queue a manually entered title as pending.

        Raises:
            ValueError: If the title is too short
        """
        title = (title or "").strip()
        if len(title) <= settings.MIN_TITLE_LENGTH:
            raise ValueError(f"Title must be longer than {settings.MIN_TITLE_LENGTH} characters")

        items = self.store.add_titles(campaign_id, [self._new_item(campaign_id, title)])
        return items[0] if items else None

    def _review(self, title_id: int, status: TitleStatus) -> bool:
        item = self.store.get_title(title_id)
        if item is None:
            logger.warning(f"Title {title_id} not found")
            return False
        if item.used_at is not None:
            logger.warning(f"Title {title_id} was already used and cannot be reviewed")
            return False

        updated = self.store.set_title_status(title_id, status, self.clock())
        if updated:
            logger.info(f"Title {title_id} {status.value}")
        return updated

    def approve(self, title_id: int) -> bool:
        return self._review(title_id, TitleStatus.APPROVED)

    def reject(self, title_id: int) -> bool:
        return self._review(title_id, TitleStatus.REJECTED)

    def list_titles(self, campaign_id: int, status: Optional[TitleStatus] = None) -> List[TitleQueueItem]:
        return self.store.get_titles(campaign_id, status)
