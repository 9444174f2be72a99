"""
WordPress Service Module

This module handles publishing to WordPress sites through the WordPress REST API.
It provides connection testing, featured image upload, markdown to HTML
conversion and post creation. Site passwords are decrypted only for the
request being made and are never logged.
"""

import re
from typing import Optional, List, Tuple

import requests

from config import settings
from data.models import ConnectionTestResult, GeneratedContent, PublishResult, PublishTarget, SiteInfo
from utils import crypto
from utils.exceptions import (
    AccessDenied,
    AuthenticationFailed,
    AutoPublisherError,
    EndpointNotFound,
    RemoteError,
    TransientNetworkError,
)
from utils.helpers import is_valid_url, make_image_filename
from utils.logger import get_logger

logger = get_logger(__name__)

BLOCK_HTML_PATTERN = re.compile(
    r'<(p|h[1-6]|ul|ol|li|div|table|blockquote|figure|pre|section|article)\b', re.IGNORECASE)
HEADER_PATTERN = re.compile(r'^(#{1,6})\s+(.*?)\s*#*\s*$')
UNORDERED_ITEM = re.compile(r'^\s*[-*+]\s+(.*)$')
ORDERED_ITEM = re.compile(r'^\s*\d+[.)]\s+(.*)$')

WP_V2_SUFFIX = "/wp/v2"
CATEGORY_PAGE_SIZE = 100

IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def default_api_endpoint(site_url: str) -> str:
    """The standard REST API base for a WordPress site URL."""
    return f"{site_url.rstrip('/')}/wp-json/wp/v2"


def rest_index_url(api_endpoint: str) -> str:
    """The REST API index (site name, description, language) above a wp/v2 endpoint."""
    endpoint = api_endpoint.rstrip('/')
    if endpoint.endswith(WP_V2_SUFFIX):
        endpoint = endpoint[:-len(WP_V2_SUFFIX)]
    return f"{endpoint}/"


def _format_inline(text: str) -> str:
    text = re.sub(r'\[([^\]]+)\]\(([^)\s]+)\)', r'<a href="\2">\1</a>', text)
    text = re.sub(r'\*\*(.+?)\*\*', r'<strong>\1</strong>', text)
    text = re.sub(r'__(.+?)__', r'<strong>\1</strong>', text)
    text = re.sub(r'(?<![\*\w])\*(?!\s)(.+?)(?<!\s)\*(?!\*)', r'<em>\1</em>', text)
    return text


def _format_block(block: str) -> List[str]:
    """Convert one blank-line separated markdown block into HTML elements."""
    elements = []
    paragraph: List[str] = []
    list_tag: Optional[str] = None
    items: List[str] = []

    def flush_paragraph():
        if paragraph:
            elements.append("<p>" + "<br>\n".join(_format_inline(line) for line in paragraph) + "</p>")
            paragraph.clear()

    def flush_list():
        nonlocal list_tag
        if items:
            lis = "".join(f"<li>{_format_inline(item)}</li>" for item in items)
            elements.append(f"<{list_tag}>{lis}</{list_tag}>")
            items.clear()
        list_tag = None

    for raw_line in block.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        header = HEADER_PATTERN.match(line)
        unordered = UNORDERED_ITEM.match(line)
        ordered = ORDERED_ITEM.match(line)

        if header:
            flush_paragraph()
            flush_list()
            level = len(header.group(1))
            elements.append(f"<h{level}>{_format_inline(header.group(2))}</h{level}>")
        elif unordered or ordered:
            flush_paragraph()
            tag = "ul" if unordered else "ol"
            if list_tag and list_tag != tag:
                flush_list()
            list_tag = tag
            items.append((unordered or ordered).group(1))
        else:
            flush_list()
            paragraph.append(line)

    flush_paragraph()
    flush_list()
    return elements


def format_content_for_wordpress(body: str) -> str:
    """
    Convert a markdown post body into WordPress HTML.

    Headers, bold, italic, links, lists, blank-line paragraphs and single line
    breaks are converted. Bodies that already contain block-level HTML are
    returned unchanged.

    Args:
        body: The post body

    Returns:
        str: HTML content
    """
    if not body:
        return ""
    if BLOCK_HTML_PATTERN.search(body):
        return body.strip()

    elements = []
    for block in re.split(r'\n\s*\n', body.replace("\r\n", "\n")):
        elements.extend(_format_block(block))
    return "\n".join(elements)


class WordPressPublisher:
    """Client for the WordPress REST API."""

    def _password(self, site: PublishTarget) -> str:
        return crypto.decrypt(site.password_encrypted) or ""

    def _url(self, site: PublishTarget, path: str) -> str:
        return f"{site.api_endpoint.rstrip('/')}/{path.lstrip('/')}"

    def _raise_for_status(self, response) -> None:
        """Map a non-2xx response onto the publishing error taxonomy."""
        if response.ok:
            return

        status = response.status_code
        try:
            message = response.json().get("message")
        except (ValueError, AttributeError):
            message = None
        message = message or (response.text or "")[:200] or "Unknown error"

        if status == 401:
            raise AuthenticationFailed("WordPress authentication failed. Please check your credentials.")
        if status == 403:
            raise AccessDenied("WordPress access denied. Please check your permissions.")
        if status == 404:
            raise EndpointNotFound("WordPress API endpoint not found. Please check your site URL.")
        raise RemoteError(status, message)

    def _request(self, method: str, site: PublishTarget, path: str, password: str,
                 timeout: int, url: Optional[str] = None, **kwargs):
        """
        Make an authenticated request against the site's REST API.

        ``url`` overrides the address built from the API endpoint and ``path``.

        Raises:
            TransientNetworkError: Connection refused, DNS failure or timeout
            PublishError: Any non-2xx response
        """
        headers = {"User-Agent": settings.USER_AGENT}
        headers.update(kwargs.pop("headers", {}))
        try:
            response = getattr(requests, method)(
                url or self._url(site, path),
                auth=(site.username, password),
                headers=headers,
                timeout=timeout,
                **kwargs
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientNetworkError(f"Cannot connect to WordPress site {site.site_url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteError(None, str(e)) from e

        self._raise_for_status(response)
        return response

    def test_connection(self, site: PublishTarget) -> ConnectionTestResult:
        """
        Check that the stored credentials work against the site.

        Never raises for HTTP, network or credential errors and never changes
        anything on the site.

        Args:
            site: The site to test

        Returns:
            ConnectionTestResult: ok with the WordPress user's name, or the reason it failed
        """
        logger.info(f"Testing WordPress connection: {site.site_name}")
        try:
            response = self._request("get", site, "users/me", self._password(site),
                                     settings.CONNECTION_TEST_TIMEOUT_SECONDS)
            user = response.json()
            identity = user.get("name") or user.get("slug") or str(user.get("id", ""))
            logger.info(f"WordPress connection test successful for user: {identity}")
            return ConnectionTestResult(ok=True, identity=identity)
        except AutoPublisherError as e:
            logger.warning(f"WordPress connection test failed for {site.site_name}: {e}")
            return ConnectionTestResult(ok=False, reason=str(e))
        except (ValueError, AttributeError) as e:
            logger.warning(f"Unexpected connection test response from {site.site_name}: {e}")
            return ConnectionTestResult(ok=False, reason=f"Unexpected response from site: {e}")

    def get_site_info(self, site: PublishTarget) -> SiteInfo:
        """
        Read the site's name, description, language and post categories.

        Never raises and never changes anything on the site.

        Args:
            site: The site to describe

        Returns:
            SiteInfo: The site's details, or ok False with the reason they could not be read
        """
        logger.info(f"Fetching WordPress site info: {site.site_name}")
        try:
            password = self._password(site)
            index = self._request("get", site, "", password, settings.CONNECTION_TEST_TIMEOUT_SECONDS,
                                  url=rest_index_url(site.api_endpoint)).json()
            categories = self._request("get", site, "categories", password,
                                       settings.CONNECTION_TEST_TIMEOUT_SECONDS,
                                       params={"per_page": CATEGORY_PAGE_SIZE}).json()
            return SiteInfo(
                ok=True,
                name=index.get("name"),
                description=index.get("description"),
                url=index.get("url") or index.get("home") or site.site_url,
                language=index.get("language"),
                categories=[
                    {"id": category["id"], "name": category.get("name"), "count": category.get("count", 0)}
                    for category in categories
                ],
            )
        except AutoPublisherError as e:
            logger.warning(f"Could not fetch site info for {site.site_name}: {e}")
            return SiteInfo(ok=False, reason=str(e))
        except (ValueError, AttributeError, KeyError, TypeError) as e:
            logger.warning(f"Unexpected site info response from {site.site_name}: {e}")
            return SiteInfo(ok=False, reason=f"Unexpected response from site: {e}")

    def verify_site(self, site: PublishTarget, skip_connection_test: bool = False) -> ConnectionTestResult:
        """
        Validate a site before it is saved.

        Args:
            site: The site being created or updated
            skip_connection_test: Only check the fields, make no request

        Returns:
            ConnectionTestResult: Whether the site can be saved
        """
        if not is_valid_url(site.site_url):
            return ConnectionTestResult(ok=False, reason=f"Invalid site URL: {site.site_url}")
        if not is_valid_url(site.api_endpoint):
            return ConnectionTestResult(ok=False, reason=f"Invalid API endpoint: {site.api_endpoint}")
        if not site.username:
            return ConnectionTestResult(ok=False, reason="Username is required")
        if not site.password_encrypted:
            return ConnectionTestResult(ok=False, reason="Password is required")

        if skip_connection_test:
            logger.info(f"Skipping connection test for {site.site_name}")
            return ConnectionTestResult(ok=True)
        return self.test_connection(site)

    def _download_image(self, image_url: str) -> Tuple[bytes, str]:
        try:
            response = requests.get(image_url, timeout=settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientNetworkError(f"Image download failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteError(None, f"Image download failed: {e}") from e

        if not response.ok:
            raise RemoteError(response.status_code, "Image download failed")
        if not response.content:
            raise RemoteError(response.status_code, "Image download returned no data")

        content_type = (response.headers.get("Content-Type") or "image/jpeg").split(";")[0].strip()
        return response.content, content_type

    def upload_featured_image(self, site: PublishTarget, image_url: str, title: str,
                              password: Optional[str] = None) -> int:
        """
        Download an image and add it to the site's media library.

        Args:
            site: The target site
            image_url: Where to download the image from
            title: Post title, used for the filename
            password: Already decrypted password, to avoid decrypting twice

        Returns:
            int: The WordPress media id
        """
        image_data, content_type = self._download_image(image_url)
        filename = make_image_filename(title, IMAGE_EXTENSIONS.get(content_type, "jpg"))

        logger.info(f"Uploading featured image {filename} to {site.site_name}")
        response = self._request(
            "post", site, "media", password if password is not None else self._password(site),
            settings.MEDIA_UPLOAD_TIMEOUT_SECONDS,
            data=image_data,
            headers={
                "Content-Type": content_type,
                "Content-Disposition": f'attachment; filename="{filename}"',
            },
        )
        media_id = response.json()["id"]
        logger.info(f"Featured image uploaded as media {media_id}")
        return media_id

    def publish(self, site: PublishTarget, content: GeneratedContent) -> PublishResult:
        """
        Publish a post, with its featured image when one was generated.

        A failed image download or upload does not stop the post: it is
        recorded in the result's warnings and the post goes out without
        featured_media.

        Args:
            site: The target site
            content: The generated (and humanized) post

        Returns:
            PublishResult: Remote post id and URL

        Raises:
            PublishError: If the post itself could not be created
            CredentialError: If the stored password cannot be decrypted
        """
        logger.info(f"Publishing '{content.title[:50]}' to WordPress site: {site.site_name}")
        password = self._password(site)

        warnings = []
        featured_media_id = None
        if content.image_url:
            try:
                featured_media_id = self.upload_featured_image(site, content.image_url, content.title, password)
            except Exception as e:
                warnings.append(f"Featured image upload failed: {e}")
                logger.warning(f"Featured image upload failed, continuing without image: {e}")

        post_data = {
            "title": content.title,
            "content": format_content_for_wordpress(content.body),
            "status": settings.DEFAULT_POST_STATUS,
            "format": "standard",
        }
        if featured_media_id:
            post_data["featured_media"] = featured_media_id

        response = self._request("post", site, "posts", password,
                                 settings.PUBLISH_TIMEOUT_SECONDS, json=post_data)
        try:
            published = response.json()
            post_id = published["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteError(response.status_code, f"Unexpected response creating post: {e}") from e

        post_url = published.get("link")
        logger.info(f"Successfully published post to WordPress: {post_url}")
        return PublishResult(
            post_id=post_id,
            post_url=post_url,
            featured_media_id=featured_media_id,
            warnings=warnings,
        )
