"""
Shared Test Fixtures for AutoPublisher

This module provides common fixtures used across all test modules.
Fixtures include test settings, database connection mocks, logging capture,
HTTP response mocks, data factories and in-memory fakes for the store,
the content generator and the publisher.
"""

import pytest
from unittest.mock import MagicMock, patch
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any, List
import itertools
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

TEST_ENCRYPTION_KEY = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
FIXED_NOW = datetime(2024, 6, 12, 10, 0, 0)


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def mock_settings(monkeypatch):
    """
    Patch the settings module with test configuration values.

    Every module holds a reference to the same config.settings module, so
    setting attributes on it is visible everywhere. Values are restored
    after the test.

    Usage:
        def test_something(mock_settings):
            mock_settings.TRIAL_POST_LIMIT = 2   # restored automatically
            # ... test code

    Returns:
        module: The patched settings module.
    """
    from config import settings

    values = {
        # API Keys (use obvious test values)
        "GOOGLE_AI_API_KEY": "test-google-api-key",
        "OPENAI_API_KEY": "test-openai-api-key",
        "ENCRYPTION_KEY": TEST_ENCRYPTION_KEY,

        # Database Settings
        "DB_SERVER": "test-server",
        "DB_NAME": "test-db",
        "DB_USER": "test-user",
        "DB_PASSWORD": "test-password",
        "DB_CONNECTION_STRING": "DRIVER={Test};SERVER=test-server;DATABASE=test-db;",
    }
    for name, value in values.items():
        monkeypatch.setattr(settings, name, value)

    class _Settings:
        """Attribute writes go through monkeypatch so they are undone."""

        def __getattr__(self, name):
            return getattr(settings, name)

        def __setattr__(self, name, value):
            monkeypatch.setattr(settings, name, value, raising=False)

    yield _Settings()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def mock_db_connection():
    """
    Mock pyodbc database connection and cursor.

    This fixture provides a mock database connection that simulates
    pyodbc behavior without requiring an actual database connection.

    Usage:
        def test_database(mock_db_connection):
            conn, cursor = mock_db_connection
            cursor.fetchall.return_value = [('row1',), ('row2',)]
            # ... test code

    Returns:
        tuple: A tuple of (mock_connection, mock_cursor).
    """
    mock_cursor = MagicMock()
    mock_cursor.description = [('column1',), ('column2',)]
    mock_cursor.fetchall.return_value = []
    mock_cursor.fetchone.return_value = None
    mock_cursor.rowcount = 0

    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cursor
    mock_conn.commit.return_value = None
    mock_conn.rollback.return_value = None
    mock_conn.close.return_value = None

    with patch('pyodbc.connect', return_value=mock_conn):
        yield mock_conn, mock_cursor


# =============================================================================
# Logging Fixtures
# =============================================================================

@pytest.fixture
def capture_logs():
    """
    Capture log messages for assertion in tests.

    Captures actual log records for inspection. Application loggers
    propagate to the root logger, where the capture handler sits.

    Returns:
        list: A list that will contain captured log records.
    """
    import logging

    class LogCapture(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []

        def emit(self, record):
            self.records.append(record)

    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    app_logger = logging.getLogger("autopublisher")
    original_app_level = app_logger.level
    app_logger.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    original_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield handler.records

    root_logger.removeHandler(handler)
    root_logger.setLevel(original_level)
    app_logger.setLevel(original_app_level)


# =============================================================================
# HTTP Response Fixtures
# =============================================================================

@pytest.fixture
def mock_http_response():
    """
    Factory fixture for creating mock HTTP responses.

    Usage:
        def test_http_request(mock_http_response):
            response = mock_http_response(
                status_code=201,
                json_data={'id': 42},
            )

    Returns:
        callable: A factory function for creating mock responses.
    """
    def _create_response(
        status_code: int = 200,
        content: bytes = b'',
        text: str = '',
        json_data: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        url: str = 'https://example.com',
    ) -> MagicMock:
        """
        Create a mock HTTP response object.

        Args:
            status_code: HTTP status code (default 200).
            content: Raw bytes content.
            text: Text content (will be auto-generated from json_data if not provided).
            json_data: Value to return from response.json().
            headers: Response headers dictionary.
            url: The URL of the response.

        Returns:
            MagicMock: A mock response object mimicking requests.Response.
        """
        import json

        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.content = content
        mock_response.url = url
        mock_response.headers = headers or {'Content-Type': 'application/json'}
        mock_response.ok = 200 <= status_code < 300

        # Set text content
        if text:
            mock_response.text = text
        elif json_data is not None:
            mock_response.text = json.dumps(json_data)
        else:
            mock_response.text = content.decode('utf-8', errors='ignore') if content else ''

        # Configure json() method
        if json_data is not None:
            mock_response.json.return_value = json_data
        else:
            mock_response.json.side_effect = ValueError("No JSON data")

        return mock_response

    return _create_response


@pytest.fixture
def mock_requests(mock_http_response):
    """
    Mock the requests library for HTTP testing.

    Usage:
        def test_api_call(mock_requests):
            mock_requests.get.return_value = mock_requests.response(
                json_data={'status': 'ok'}
            )

    Returns:
        MagicMock: A mock requests module with response factory attached.
    """
    with patch('requests.get') as mock_get, \
         patch('requests.post') as mock_post, \
         patch('requests.put') as mock_put, \
         patch('requests.delete') as mock_delete:

        mock_req = MagicMock()
        mock_req.get = mock_get
        mock_req.post = mock_post
        mock_req.put = mock_put
        mock_req.delete = mock_delete
        mock_req.response = mock_http_response

        yield mock_req


# =============================================================================
# Clock
# =============================================================================

class FixedClock:
    """A callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """A FixedClock set to FIXED_NOW."""
    return FixedClock()


# =============================================================================
# Data Model Factories
# =============================================================================

@pytest.fixture
def user_factory():
    """
    Factory fixture for creating User test objects.

    Usage:
        def test_quota(user_factory):
            user = user_factory(subscription_tier='trial', total_posts_published=5)
    """
    from data.models import User

    def _create_user(
        id: int = 1,
        subscription_tier: Optional[str] = 'professional',
        posts_published_this_month: int = 0,
        total_posts_published: int = 0,
        is_active: bool = True,
        email: str = 'owner@example.com',
    ):
        return User(
            id=id,
            subscription_tier=subscription_tier,
            posts_published_this_month=posts_published_this_month,
            total_posts_published=total_posts_published,
            is_active=is_active,
            email=email,
        )

    return _create_user


@pytest.fixture
def site_factory():
    """
    Factory fixture for creating PublishTarget test objects.

    The password is encrypted with the test encryption key, so the fixture
    should be used together with mock_settings when the password is decrypted.
    """
    from data.models import PublishTarget
    from utils import crypto

    def _create_site(
        id: int = 1,
        user_id: int = 1,
        site_name: str = 'Test Blog',
        site_url: str = 'https://blog.example.com',
        username: str = 'editor',
        password: str = 'app-password',
        api_endpoint: Optional[str] = None,
        is_active: bool = True,
    ):
        return PublishTarget(
            id=id,
            user_id=user_id,
            site_name=site_name,
            site_url=site_url,
            username=username,
            password_encrypted=crypto.encrypt(password, TEST_ENCRYPTION_KEY) if password else '',
            api_endpoint=api_endpoint if api_endpoint is not None else f"{site_url}/wp-json/wp/v2",
            is_active=is_active,
        )

    return _create_site


@pytest.fixture
def campaign_factory():
    """
    Factory fixture for creating Campaign test objects.

    Usage:
        def test_campaign(campaign_factory):
            campaign = campaign_factory(interval_hours=Decimal('1.00'))
    """
    from data.models import Campaign, CampaignStatus, ToneOfVoice, WritingStyle

    def _create_campaign(
        id: int = 1,
        user_id: int = 1,
        topic: str = 'Home coffee brewing',
        context: str = 'For beginners who just bought their first grinder',
        tone_of_voice: ToneOfVoice = ToneOfVoice.CONVERSATIONAL,
        writing_style: WritingStyle = WritingStyle.PAS,
        imperfection_list: Optional[List[str]] = None,
        content_types: Optional[List[str]] = None,
        content_type_variables: Optional[Dict[str, str]] = None,
        interval_hours: Decimal = Decimal('24.00'),
        next_publish_at: Optional[datetime] = None,
        wordpress_site_id: Optional[int] = 1,
        status: CampaignStatus = CampaignStatus.ACTIVE,
    ):
        return Campaign(
            id=id,
            user_id=user_id,
            topic=topic,
            context=context,
            tone_of_voice=tone_of_voice,
            writing_style=writing_style,
            imperfection_list=imperfection_list or [],
            content_types=content_types or [],
            content_type_variables=content_type_variables or {},
            interval_hours=interval_hours,
            next_publish_at=next_publish_at if next_publish_at is not None else FIXED_NOW - timedelta(minutes=5),
            wordpress_site_id=wordpress_site_id,
            status=status,
        )

    return _create_campaign


@pytest.fixture
def generated_content_factory():
    """Factory fixture for creating GeneratedContent test objects."""
    from data.models import GeneratedContent

    def _create_content(
        title: str = 'Five Mistakes Beginners Make With Pour Over Coffee',
        body: str = 'Most people grind the beans too fine.\n\nThe water should be just off the boil.',
        keywords: Optional[List[str]] = None,
        content_type: str = 'how_to_guide',
        image_prompt: Optional[str] = 'A pour over coffee setup on a kitchen counter',
        image_url: Optional[str] = None,
    ):
        return GeneratedContent(
            title=title,
            body=body,
            keywords=keywords if keywords is not None else ['coffee', 'pour over'],
            content_type=content_type,
            image_prompt=image_prompt,
            image_url=image_url,
        )

    return _create_content


# =============================================================================
# In-Memory Fakes
# =============================================================================

class InMemoryCampaignStore:
    """
    CampaignStore fake backed by dictionaries.

    Claims and completions use the same conditions as the SQL implementation:
    a claim only matches an active campaign that is still due, and only
    in-progress items can be completed or failed. Due campaigns are returned
    as copies, like rows read from a database.
    """

    def __init__(self):
        self.users: Dict[int, Any] = {}
        self.sites: Dict[int, Any] = {}
        self.campaigns: Dict[int, Any] = {}
        self.titles: Dict[int, Any] = {}
        self.queue: Dict[int, Any] = {}
        self.events: List[Any] = []
        self._queue_ids = itertools.count(1)
        self._title_ids = itertools.count(1)

    # Setup helpers

    def add_user(self, user):
        self.users[user.id] = user
        return user

    def add_site(self, site):
        self.sites[site.id] = site
        return site

    def add_campaign(self, campaign):
        self.campaigns[campaign.id] = replace(campaign)
        return campaign

    def add_queue_item(self, **fields):
        from data.models import ContentQueueItem

        item = ContentQueueItem(id=next(self._queue_ids), **fields)
        self.queue[item.id] = item
        return item

    def add_approved_title(self, campaign_id: int, title: str, approved_at: datetime):
        from data.models import TitleQueueItem, TitleStatus

        item = TitleQueueItem(id=next(self._title_ids), campaign_id=campaign_id, title=title,
                              status=TitleStatus.APPROVED, generated_at=approved_at,
                              approved_at=approved_at)
        self.titles[item.id] = item
        return item

    def events_of(self, event_type: str) -> List[Any]:
        return [e for e in self.events if e.event_type == event_type]

    # Campaigns, users and sites

    def get_due_campaigns(self, now, limit):
        from data.models import CampaignStatus

        due = []
        for campaign in self.campaigns.values():
            site = self.sites.get(campaign.wordpress_site_id)
            user = self.users.get(campaign.user_id)
            if (campaign.status == CampaignStatus.ACTIVE
                    and campaign.next_publish_at is not None
                    and campaign.next_publish_at <= now
                    and site is not None and site.is_active
                    and user is not None and user.is_active):
                due.append(replace(campaign))
        due.sort(key=lambda c: c.next_publish_at)
        return due[:limit]

    def get_user(self, user_id):
        return self.users.get(user_id)

    def get_site(self, site_id):
        return self.sites.get(site_id)

    def list_active_sites(self):
        return [s for s in sorted(self.sites.values(), key=lambda s: s.id) if s.is_active]

    def claim_campaign(self, campaign, now, next_run):
        from data.models import CampaignStatus, ContentQueueItem, QueueStatus, TitleStatus

        stored = self.campaigns.get(campaign.id)
        if (stored is None or stored.status != CampaignStatus.ACTIVE
                or stored.next_publish_at is None or stored.next_publish_at > now):
            return None
        stored.next_publish_at = next_run

        busy = {i.title_queue_id for i in self.queue.values() if i.status == QueueStatus.IN_PROGRESS}
        candidates = sorted(
            (t for t in self.titles.values()
             if t.campaign_id == campaign.id and t.status == TitleStatus.APPROVED
             and t.used_at is None and t.id not in busy),
            key=lambda t: (t.approved_at, t.id))
        title = candidates[0] if candidates else None

        item = ContentQueueItem(
            id=next(self._queue_ids),
            campaign_id=campaign.id,
            status=QueueStatus.IN_PROGRESS,
            title_queue_id=title.id if title else None,
            title=title.title if title else None,
            scheduled_for=now,
            started_at=now,
            created_at=now,
        )
        self.queue[item.id] = item
        return replace(item)

    def reschedule_campaign(self, campaign_id, next_run, now):
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            return False
        campaign.next_publish_at = next_run
        return True

    # Content queue

    def update_queue_content(self, item_id, title, body, keywords, content_type):
        item = self.queue.get(item_id)
        if item is None:
            return False
        item.title, item.body, item.keywords, item.content_type = title, body, list(keywords), content_type
        return True

    def update_queue_image(self, item_id, image_url):
        item = self.queue.get(item_id)
        if item is None:
            return False
        item.featured_image_url = image_url
        return True

    def complete_queue_item(self, item_id, result, user_id, title_queue_id, now):
        from data.models import QueueStatus

        item = self.queue.get(item_id)
        if item is None or item.status != QueueStatus.IN_PROGRESS:
            return False
        item.status = QueueStatus.COMPLETED
        item.wordpress_post_id = result.post_id
        item.wordpress_post_url = result.post_url
        item.completed_at = now
        item.error_message = None

        user = self.users.get(user_id)
        if user is not None:
            user.posts_published_this_month += 1
            user.total_posts_published += 1

        title = self.titles.get(title_queue_id)
        if title is not None and title.used_at is None:
            title.used_at = now
        return True

    def fail_queue_item(self, item_id, error_message, now):
        from data.models import QueueStatus

        item = self.queue.get(item_id)
        if item is None or item.status != QueueStatus.IN_PROGRESS:
            return False
        item.status = QueueStatus.FAILED
        item.error_message = error_message
        item.completed_at = now
        return True

    def get_queue_stats(self, since):
        from data.models import QueueStatus

        stats = {status.value: 0 for status in QueueStatus}
        for item in self.queue.values():
            if item.created_at is not None and item.created_at >= since:
                stats[item.status.value] += 1
        return stats

    # Event log

    def log_event(self, event):
        self.events.append(event)
        return True

    # Maintenance sweeps

    def fail_stuck_items(self, cutoff, now, message):
        from data.models import QueueStatus

        count = 0
        for item in self.queue.values():
            if item.status == QueueStatus.IN_PROGRESS and item.started_at < cutoff:
                item.status = QueueStatus.FAILED
                item.error_message = message
                item.completed_at = now
                count += 1
        return count

    def _delete_items(self, predicate):
        doomed = [item_id for item_id, item in self.queue.items() if predicate(item)]
        for item_id in doomed:
            del self.queue[item_id]
        return len(doomed)

    def delete_failed_before(self, cutoff):
        from data.models import QueueStatus
        return self._delete_items(lambda i: i.status == QueueStatus.FAILED and i.created_at < cutoff)

    def delete_completed_before(self, cutoff):
        from data.models import QueueStatus
        return self._delete_items(lambda i: i.status == QueueStatus.COMPLETED and i.completed_at < cutoff)

    def delete_logs_before(self, cutoff, severities):
        kept = [e for e in self.events if not (e.created_at < cutoff and e.severity.value in severities)]
        deleted = len(self.events) - len(kept)
        self.events = kept
        return deleted

    def reset_period_counters(self, tiers):
        count = 0
        for user in self.users.values():
            if user.subscription_tier in tiers:
                user.posts_published_this_month = 0
                count += 1
        return count

    # Title queue

    def add_titles(self, campaign_id, titles):
        for item in titles:
            item.id = next(self._title_ids)
            self.titles[item.id] = item
        return list(titles)

    def get_title(self, title_id):
        return self.titles.get(title_id)

    def set_title_status(self, title_id, status, now):
        from data.models import TitleStatus

        item = self.titles.get(title_id)
        if item is None:
            return False
        item.status = status
        if status == TitleStatus.APPROVED:
            item.approved_at = now
        return True

    def get_titles(self, campaign_id, status=None):
        items = [t for t in self.titles.values()
                 if t.campaign_id == campaign_id and (status is None or t.status == status)]
        return sorted(items, key=lambda t: (t.generated_at, t.id), reverse=True)


class FakeGenerator:
    """ContentGeneratorProtocol fake that records calls and can be told to fail."""

    def __init__(self):
        self.error: Optional[Exception] = None
        self.image_url: Optional[str] = 'https://images.example.com/generated.png'
        self.body = ('Most people grind the beans too fine. It is the most common mistake.\n\n'
                     'The water should be just off the boil.')
        self.content_calls: List[Any] = []
        self.image_calls: List[Any] = []
        self.titles = ['Ten Mistakes Every Beginner Makes With Coffee',
                       'Why Your Grinder Matters More Than Your Beans']

    def generate_titles(self, campaign, count=5):
        if self.error:
            raise self.error
        return self.titles[:count]

    def generate_content(self, campaign, options=None):
        from data.models import GeneratedContent

        options = options or {}
        self.content_calls.append((campaign.id, dict(options)))
        if self.error:
            raise self.error
        return GeneratedContent(
            title=options.get('title') or 'Five Mistakes Beginners Make With Pour Over Coffee',
            body=self.body,
            keywords=['coffee', 'brewing'],
            content_type=options.get('content_type') or 'how_to_guide',
            image_prompt=f'Featured image for {campaign.topic}',
        )

    def generate_keywords(self, topic, body):
        return ['coffee', 'brewing']

    def generate_image(self, image_prompt):
        self.image_calls.append(image_prompt)
        return self.image_url


class FakePublisher:
    """PublisherProtocol fake that records published content."""

    def __init__(self):
        self.error: Optional[Exception] = None
        self.warnings: List[str] = []
        self.published: List[Any] = []
        self.connection_results: Dict[int, Any] = {}
        self._post_ids = itertools.count(100)

    def test_connection(self, site):
        from data.models import ConnectionTestResult
        return self.connection_results.get(site.id, ConnectionTestResult(ok=True, identity='editor'))

    def get_site_info(self, site):
        from data.models import SiteInfo
        return SiteInfo(ok=True, name=site.site_name, url=site.site_url, language='en-US')

    def verify_site(self, site, skip_connection_test=False):
        from data.models import ConnectionTestResult
        return ConnectionTestResult(ok=True) if skip_connection_test else self.test_connection(site)

    def publish(self, site, content):
        from data.models import PublishResult

        if self.error:
            raise self.error
        self.published.append((site.id, content))
        post_id = next(self._post_ids)
        return PublishResult(
            post_id=post_id,
            post_url=f'{site.site_url}/?p={post_id}',
            featured_media_id=7 if content.image_url and not self.warnings else None,
            warnings=list(self.warnings),
        )


@pytest.fixture
def store():
    """An empty InMemoryCampaignStore."""
    return InMemoryCampaignStore()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def fake_publisher():
    return FakePublisher()


@pytest.fixture
def seeded_store(store, user_factory, site_factory, campaign_factory):
    """
    A store with one professional user, one active site and one due campaign
    on a one-hour interval.
    """
    store.add_user(user_factory())
    store.add_site(site_factory())
    store.add_campaign(campaign_factory(interval_hours=Decimal('1.00')))
    return store
