"""
Database Module for AutoPublisher

This module handles all database connections and operations for the campaign
pipeline. It provides the SQL Server implementation of the CampaignStore protocol:
due-campaign selection, the atomic campaign claim, queue state transitions,
event logging and the retention sweeps.
"""

import functools
import json
import threading
from datetime import datetime
from typing import Optional, List, Dict, Any

import pyodbc
import pandas as pd

from config import settings
from data.models import (
    Campaign,
    CampaignEvent,
    ContentQueueItem,
    PublishResult,
    PublishTarget,
    QueueStatus,
    TitleQueueItem,
    TitleStatus,
    User,
)
from utils.exceptions import ConnectionError as DatabaseConnectionError
from utils.logger import get_logger

logger = get_logger(__name__)

CAMPAIGN_COLUMNS = """
    c.id, c.user_id, c.wordpress_site_id, c.topic, c.context, c.tone_of_voice,
    c.writing_style, c.imperfection_list, c.schedule, c.schedule_hours,
    c.content_types, c.content_type_variables, c.status, c.next_publish_at
"""


def synchronized(method):
    """
    Run the method while holding the connection lock.

    All job threads share one pyodbc connection, so a transaction must never
    interleave with statements from another thread.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class DatabaseConnection:
    """Database connection manager and CampaignStore implementation."""

    def __init__(self, connection_string: Optional[str] = None):
        """Initialize the database connection."""
        self.conn = None
        self.connection_string = connection_string
        self._lock = threading.RLock()
        pyodbc.pooling = False

    @synchronized
    def connect(self) -> bool:
        """
        Establish a connection to the database.

        Returns:
            bool: True if connection was successful, False otherwise.
        """
        try:
            self.conn = pyodbc.connect(self.connection_string or settings.DB_CONNECTION_STRING)
            self.conn.setdecoding(pyodbc.SQL_CHAR, encoding='utf-8')
            logger.info("Successfully connected to database")
            return True
        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            self.conn = None
            return False

    @synchronized
    def close(self) -> None:
        """Close the database connection."""
        try:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Database connection closed")
        except Exception as e:
            logger.error(f"Error closing database connection: {e}")

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except Exception as e:
            logger.debug(f"Rollback failed: {e}")

    @synchronized
    def execute_query(self, query: str, params: Optional[tuple] = None) -> Optional[List[Dict]]:
        """
        Execute a SQL query and return the results.

        Args:
            query: The SQL query to execute.
            params: Query parameters (optional).

        Returns:
            Optional[List[Dict]]: Query results as a list of dictionaries, or None if an error occurred.
        """
        if not self.conn and not self.connect():
            return None

        try:
            cursor = self.conn.cursor()
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            # Check if this is a SELECT query with results
            if cursor.description:
                columns = [column[0] for column in cursor.description]
                results = [dict(zip(columns, row)) for row in cursor.fetchall()]
                return results
            else:
                self.conn.commit()
                return []

        except Exception as e:
            logger.error(f"Error executing query: {e}")
            self._rollback()
            return None

    @synchronized
    def execute_update(self, query: str, params: tuple, description: str) -> Optional[int]:
        """
        Execute a single INSERT/UPDATE/DELETE and commit it.

        Args:
            query: The SQL statement.
            params: Statement parameters.
            description: Short description used in error logs.

        Returns:
            Optional[int]: Affected row count, or None if an error occurred.
        """
        if not self.conn and not self.connect():
            return None

        try:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            rowcount = cursor.rowcount
            self.conn.commit()
            return rowcount
        except Exception as e:
            logger.error(f"Error {description}: {e}")
            self._rollback()
            return None

    # =========================================================================
    # Campaigns, users and sites
    # =========================================================================

    def get_due_campaigns(self, now: datetime, limit: int) -> List[Campaign]:
        """
        Retrieve active campaigns whose next run has passed.

        Only campaigns with an active publish target and an active owner are
        returned, oldest due first.

        Args:
            now: Current UTC time.
            limit: Maximum number of campaigns.

        Returns:
            List[Campaign]: Due campaigns (empty on error).
        """
        query = f"""
        SELECT TOP (?) {CAMPAIGN_COLUMNS}
        FROM [dbo].[campaigns] c
        JOIN [dbo].[wordpress_sites] ws ON ws.id = c.wordpress_site_id
        JOIN [dbo].[users] u ON u.id = c.user_id
        WHERE c.status = 'active'
        AND c.next_publish_at <= ?
        AND ws.is_active = 1
        AND u.is_active = 1
        ORDER BY c.next_publish_at ASC
        """
        rows = self.execute_query(query, (limit, now))
        if rows is None:
            logger.error("Error retrieving due campaigns")
            return []

        campaigns = []
        for row in rows:
            try:
                campaigns.append(Campaign.from_row(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable campaign row {row.get('id')}: {e}")
        return campaigns

    def get_user(self, user_id: int) -> Optional[User]:
        query = """
        SELECT id, email, subscription_tier, posts_published_this_month,
               total_posts_published, max_concurrent_campaigns, is_active
        FROM [dbo].[users]
        WHERE id = ?
        """
        rows = self.execute_query(query, (user_id,))
        return User.from_row(rows[0]) if rows else None

    def get_site(self, site_id: int) -> Optional[PublishTarget]:
        query = """
        SELECT id, user_id, site_name, site_url, username, password_encrypted, api_endpoint, is_active
        FROM [dbo].[wordpress_sites]
        WHERE id = ?
        """
        rows = self.execute_query(query, (site_id,))
        return PublishTarget.from_row(rows[0]) if rows else None

    def list_active_sites(self) -> List[PublishTarget]:
        query = """
        SELECT id, user_id, site_name, site_url, username, password_encrypted, api_endpoint, is_active
        FROM [dbo].[wordpress_sites]
        WHERE is_active = 1
        ORDER BY id
        """
        rows = self.execute_query(query)
        return [PublishTarget.from_row(row) for row in rows or []]

    def reschedule_campaign(self, campaign_id: int, next_run: datetime, now: datetime) -> bool:
        query = """
        UPDATE [dbo].[campaigns]
        SET [next_publish_at] = ?, [updated_at] = ?
        WHERE [id] = ?
        """
        rowcount = self.execute_update(query, (next_run, now, campaign_id), "rescheduling campaign")
        return bool(rowcount)

    # =========================================================================
    # Content queue
    # =========================================================================

    @synchronized
    def claim_campaign(self, campaign: Campaign, now: datetime, next_run: datetime) -> Optional[ContentQueueItem]:
        """
        Claim the current cycle of a due campaign.

        The next-run update only matches while the campaign is still active and
        due, so two passes over the same cycle cannot both succeed. The queue item
        is created in the same transaction and linked to the oldest approved,
        unused title.

        Args:
            campaign: The due campaign.
            now: Current UTC time.
            next_run: The campaign's new next-run timestamp.

        Returns:
            Optional[ContentQueueItem]: The in-progress item, or None if not claimed.
        """
        if not self.conn and not self.connect():
            return None

        try:
            cursor = self.conn.cursor()
            cursor.execute("""
            UPDATE [dbo].[campaigns]
            SET [next_publish_at] = ?, [updated_at] = ?
            WHERE [id] = ? AND [status] = 'active' AND [next_publish_at] <= ?
            """, (next_run, now, campaign.id, now))

            if cursor.rowcount != 1:
                self._rollback()
                logger.info(f"Campaign {campaign.id} was already claimed for this cycle")
                return None

            cursor.execute("""
            SELECT TOP 1 tq.id, tq.title
            FROM [dbo].[title_queue] tq WITH (UPDLOCK, READPAST)
            WHERE tq.campaign_id = ?
            AND tq.status = 'approved'
            AND tq.used_at IS NULL
            AND NOT EXISTS (
                SELECT 1 FROM [dbo].[content_queue] cq
                WHERE cq.title_queue_id = tq.id AND cq.status = 'in_progress'
            )
            ORDER BY tq.approved_at ASC, tq.id ASC
            """, (campaign.id,))
            title_row = cursor.fetchone()
            title_queue_id = title_row[0] if title_row else None
            title = title_row[1] if title_row else None

            cursor.execute("""
            INSERT INTO [dbo].[content_queue]
                ([campaign_id], [title_queue_id], [title], [status], [scheduled_for], [created_at])
            OUTPUT INSERTED.id
            VALUES (?, ?, ?, 'pending', ?, ?)
            """, (campaign.id, title_queue_id, title, now, now))
            item_id = cursor.fetchone()[0]

            cursor.execute("""
            UPDATE [dbo].[content_queue]
            SET [status] = 'in_progress', [started_at] = ?
            WHERE [id] = ? AND [status] = 'pending'
            """, (now, item_id))

            self.conn.commit()
            logger.info(f"Claimed campaign {campaign.id}, queue item {item_id}")

            return ContentQueueItem(
                id=item_id,
                campaign_id=campaign.id,
                status=QueueStatus.IN_PROGRESS,
                title_queue_id=title_queue_id,
                title=title,
                scheduled_for=now,
                started_at=now,
                created_at=now,
            )

        except Exception as e:
            logger.error(f"Error claiming campaign {campaign.id}: {e}")
            self._rollback()
            return None

    def update_queue_content(self, item_id: int, title: str, body: str,
                             keywords: List[str], content_type: Optional[str]) -> bool:
        query = """
        UPDATE [dbo].[content_queue]
        SET [title] = ?, [generated_content] = ?, [keywords] = ?, [content_type] = ?
        WHERE [id] = ?
        """
        rowcount = self.execute_update(
            query, (title, body, json.dumps(keywords), content_type, item_id),
            "storing generated content")
        return bool(rowcount)

    def update_queue_image(self, item_id: int, image_url: Optional[str]) -> bool:
        query = "UPDATE [dbo].[content_queue] SET [featured_image_url] = ? WHERE [id] = ?"
        rowcount = self.execute_update(query, (image_url, item_id), "storing featured image url")
        return bool(rowcount)

    @synchronized
    def complete_queue_item(self, item_id: int, result: PublishResult, user_id: int,
                            title_queue_id: Optional[int], now: datetime) -> bool:
        """
        Record a confirmed publish.

        Completes the item, increments the owner's monthly and lifetime counters
        and marks the title used in one transaction. Nothing changes if the item
        is no longer in progress (for example reclaimed by the stuck-item sweep).

        Returns:
            bool: True if the item was completed.
        """
        if not self.conn and not self.connect():
            return False

        try:
            cursor = self.conn.cursor()
            cursor.execute("""
            UPDATE [dbo].[content_queue]
            SET [status] = 'completed',
                [wordpress_post_id] = ?,
                [wordpress_post_url] = ?,
                [completed_at] = ?,
                [error_message] = NULL
            WHERE [id] = ? AND [status] = 'in_progress'
            """, (result.post_id, result.post_url, now, item_id))

            if cursor.rowcount != 1:
                self._rollback()
                logger.warning(f"Queue item {item_id} is no longer in progress, not completing")
                return False

            cursor.execute("""
            UPDATE [dbo].[users]
            SET [posts_published_this_month] = [posts_published_this_month] + 1,
                [total_posts_published] = [total_posts_published] + 1,
                [updated_at] = ?
            WHERE [id] = ?
            """, (now, user_id))

            if title_queue_id is not None:
                cursor.execute("""
                UPDATE [dbo].[title_queue]
                SET [used_at] = ?
                WHERE [id] = ? AND [used_at] IS NULL
                """, (now, title_queue_id))

            self.conn.commit()
            logger.info(f"Completed queue item {item_id} (post {result.post_id})")
            return True

        except Exception as e:
            logger.error(f"Error completing queue item {item_id}: {e}")
            self._rollback()
            return False

    def fail_queue_item(self, item_id: int, error_message: str, now: datetime) -> bool:
        query = """
        UPDATE [dbo].[content_queue]
        SET [status] = 'failed', [error_message] = ?, [completed_at] = ?
        WHERE [id] = ? AND [status] = 'in_progress'
        """
        rowcount = self.execute_update(query, (error_message, now, item_id), "failing queue item")
        return bool(rowcount)

    def get_queue_stats(self, since: datetime) -> Dict[str, int]:
        """
        Count content queue items per status.

        Args:
            since: Only items created at or after this time are counted.

        Returns:
            Dict[str, int]: Count for every queue status (zero when absent).
        """
        query = """
        SELECT [status], COUNT(*) AS [count]
        FROM [dbo].[content_queue]
        WHERE [created_at] >= ?
        GROUP BY [status]
        """
        stats = {status.value: 0 for status in QueueStatus}
        for row in self.execute_query(query, (since,)) or []:
            stats[row["status"]] = row["count"]
        return stats

    @synchronized
    def get_recent_activity(self, since: datetime) -> Optional[pd.DataFrame]:
        """
        Retrieve queue activity for operator reports.

        Args:
            since: Only items created at or after this time are included.

        Returns:
            Optional[pd.DataFrame]: One row per queue item, or None if an error occurred.
        """
        query = """
        SELECT cq.id, cq.campaign_id, c.topic, cq.status, cq.title, cq.content_type,
               cq.wordpress_post_url, cq.error_message, cq.created_at, cq.completed_at
        FROM [dbo].[content_queue] cq
        JOIN [dbo].[campaigns] c ON c.id = cq.campaign_id
        WHERE cq.created_at >= ?
        ORDER BY cq.created_at DESC
        """

        try:
            if not self.conn and not self.connect():
                return None

            return pd.read_sql(query, self.conn, params=[since])

        except Exception as e:
            logger.error(f"Error retrieving recent activity: {e}")
            return None

    # =========================================================================
    # Event log
    # =========================================================================

    def log_event(self, event: CampaignEvent) -> bool:
        query = """
        INSERT INTO [dbo].[logs]
            ([user_id], [campaign_id], [event_type], [message], [metadata], [severity], [created_at])
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            event.user_id,
            event.campaign_id,
            event.event_type,
            event.message,
            json.dumps(event.metadata or {}, default=str),
            event.severity.value,
            event.created_at,
        )
        rowcount = self.execute_update(query, params, f"logging event '{event.event_type}'")
        return bool(rowcount)

    # =========================================================================
    # Maintenance sweeps
    # =========================================================================

    def fail_stuck_items(self, cutoff: datetime, now: datetime, message: str) -> int:
        query = """
        UPDATE [dbo].[content_queue]
        SET [status] = 'failed', [error_message] = ?, [completed_at] = ?
        WHERE [status] = 'in_progress' AND [started_at] < ?
        """
        return self.execute_update(query, (message, now, cutoff), "failing stuck queue items") or 0

    def delete_failed_before(self, cutoff: datetime) -> int:
        query = "DELETE FROM [dbo].[content_queue] WHERE [status] = 'failed' AND [created_at] < ?"
        return self.execute_update(query, (cutoff,), "deleting old failed queue items") or 0

    def delete_completed_before(self, cutoff: datetime) -> int:
        query = "DELETE FROM [dbo].[content_queue] WHERE [status] = 'completed' AND [completed_at] < ?"
        return self.execute_update(query, (cutoff,), "deleting old completed queue items") or 0

    def delete_logs_before(self, cutoff: datetime, severities: List[str]) -> int:
        if not severities:
            return 0
        placeholders = ", ".join("?" for _ in severities)
        query = f"DELETE FROM [dbo].[logs] WHERE [created_at] < ? AND [severity] IN ({placeholders})"
        return self.execute_update(query, (cutoff, *severities), "deleting old log entries") or 0

    def reset_period_counters(self, tiers: List[str]) -> int:
        if not tiers:
            return 0
        placeholders = ", ".join("?" for _ in tiers)
        query = f"""
        UPDATE [dbo].[users]
        SET [posts_published_this_month] = 0
        WHERE [subscription_tier] IN ({placeholders})
        """
        return self.execute_update(query, tuple(tiers), "resetting monthly counters") or 0

    # =========================================================================
    # Title queue
    # =========================================================================

    @synchronized
    def add_titles(self, campaign_id: int, titles: List[TitleQueueItem]) -> List[TitleQueueItem]:
        """
        Insert pending titles for a campaign in one transaction.

        Returns:
            List[TitleQueueItem]: The inserted items with ids, or an empty list on error.
        """
        if not titles:
            return []
        if not self.conn and not self.connect():
            return []

        try:
            cursor = self.conn.cursor()
            inserted = []
            for item in titles:
                cursor.execute("""
                INSERT INTO [dbo].[title_queue] ([campaign_id], [title], [status], [keywords], [generated_at])
                OUTPUT INSERTED.id
                VALUES (?, ?, 'pending', ?, ?)
                """, (campaign_id, item.title, json.dumps(item.keywords), item.generated_at))
                item.id = cursor.fetchone()[0]
                inserted.append(item)
            self.conn.commit()
            logger.info(f"Added {len(inserted)} titles to campaign {campaign_id}")
            return inserted

        except Exception as e:
            logger.error(f"Error adding titles for campaign {campaign_id}: {e}")
            self._rollback()
            return []

    def get_title(self, title_id: int) -> Optional[TitleQueueItem]:
        query = """
        SELECT id, campaign_id, title, status, keywords, generated_at, approved_at, used_at
        FROM [dbo].[title_queue]
        WHERE id = ?
        """
        rows = self.execute_query(query, (title_id,))
        return TitleQueueItem.from_row(rows[0]) if rows else None

    def set_title_status(self, title_id: int, status: TitleStatus, now: datetime) -> bool:
        if status == TitleStatus.APPROVED:
            query = "UPDATE [dbo].[title_queue] SET [status] = ?, [approved_at] = ? WHERE [id] = ?"
            params = (status.value, now, title_id)
        else:
            query = "UPDATE [dbo].[title_queue] SET [status] = ? WHERE [id] = ?"
            params = (status.value, title_id)
        rowcount = self.execute_update(query, params, f"setting title {title_id} to {status.value}")
        return bool(rowcount)

    def get_titles(self, campaign_id: int, status: Optional[TitleStatus] = None) -> List[TitleQueueItem]:
        query = """
        SELECT id, campaign_id, title, status, keywords, generated_at, approved_at, used_at
        FROM [dbo].[title_queue]
        WHERE campaign_id = ?
        """
        params: tuple = (campaign_id,)
        if status is not None:
            query += " AND status = ?"
            params = (campaign_id, status.value)
        query += " ORDER BY generated_at DESC, id DESC"
        rows = self.execute_query(query, params)
        return [TitleQueueItem.from_row(row) for row in rows or []]


# Create a default database instance for use throughout the application
db = DatabaseConnection()
