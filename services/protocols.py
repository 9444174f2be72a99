"""
Service Protocol Definitions

This module defines typing.Protocol interfaces for the external-service clients
used by the campaign scheduler. These protocols enable loose coupling,
dependency injection, and easier testing.

Protocols defined:
- ContentGeneratorProtocol: Interface for text and image generation
- PublisherProtocol: Interface for publish-target (WordPress) clients
"""

from typing import Protocol, Optional, List, Dict, Any

from data.models import (
    Campaign,
    ConnectionTestResult,
    GeneratedContent,
    PublishResult,
    PublishTarget,
    SiteInfo,
)


class ContentGeneratorProtocol(Protocol):
    """Protocol defining the interface for content generation services.

    Implementations should provide methods for:
    - Generating candidate titles for a campaign
    - Generating a full post (title, body, keywords, image prompt)
    - Generating a featured image from a prompt

    Text methods raise ProviderNotConfigured, QuotaExceeded or ProviderError.
    Keyword and image generation are best-effort and never raise.
    """

    def generate_titles(self, campaign: Campaign, count: int = 5) -> List[str]:
        """Generate up to ``count`` candidate titles."""
        ...

    def generate_content(self, campaign: Campaign, options: Optional[Dict[str, Any]] = None) -> GeneratedContent:
        """Generate a post.

        Args:
            campaign: The campaign being processed.
            options: "content_type" forces a template; "title" is an approved title to use.
        """
        ...

    def generate_keywords(self, topic: str, body: str) -> List[str]:
        ...

    def generate_image(self, image_prompt: Optional[str]) -> Optional[str]:
        """Generate a featured image and return its URL, or None."""
        ...


class PublisherProtocol(Protocol):
    """Protocol defining the interface for publish-target clients.

    ``publish`` raises the PublishError taxonomy for failures of the post itself;
    featured image failures are reported in ``PublishResult.warnings``.
    ``test_connection`` and ``get_site_info`` never raise.
    """

    def test_connection(self, site: PublishTarget) -> ConnectionTestResult:
        ...

    def get_site_info(self, site: PublishTarget) -> SiteInfo:
        ...

    def verify_site(self, site: PublishTarget, skip_connection_test: bool = False) -> ConnectionTestResult:
        ...

    def publish(self, site: PublishTarget, content: GeneratedContent) -> PublishResult:
        ...
