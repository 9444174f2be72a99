"""
Helper Utility Module

This module provides various helper functions used throughout the AutoPublisher application.
"""

import re
from typing import List
from datetime import datetime, timezone
from urllib.parse import urlparse

STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "from", "your", "you", "are",
    "how", "what", "why", "when", "into", "about", "than", "will", "have",
    "more", "most", "best", "their", "they", "them", "our", "can", "its",
}


def utcnow() -> datetime:
    """
    Current time as a naive UTC datetime, the form stored in the database.

    Returns:
        datetime: Naive datetime in UTC
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_valid_url(url: str) -> bool:
    """
    Check if a URL is valid.

    Args:
        url: The URL to validate

    Returns:
        bool: True if the URL is valid, False otherwise
    """
    try:
        result = urlparse(url)
        return all([result.scheme, result.netloc])
    except Exception:
        return False


def strip_html_tags(text: str) -> str:
    """
    Remove HTML tags from text.

    Args:
        text: The text to clean

    Returns:
        str: Text with HTML tags removed
    """
    clean = re.compile('<.*?>')
    return re.sub(clean, '', text)


def strip_markdown(text: str) -> str:
    """Remove lightweight markdown markers (headers, emphasis, list bullets)."""
    text = re.sub(r'^\s{0,3}#{1,6}\s*', '', text, flags=re.MULTILINE)
    text = re.sub(r'^\s*[-*+]\s+', '', text, flags=re.MULTILINE)
    text = re.sub(r'(\*\*|__|\*|_)', '', text)
    return text


def truncate_text(text: str, max_length: int = 100, add_ellipsis: bool = True) -> str:
    """
    Truncate text to a maximum length.

    Args:
        text: The text to truncate
        max_length: Maximum length
        add_ellipsis: Whether to add an ellipsis if text is truncated

    Returns:
        str: Truncated text
    """
    if not text or len(text) <= max_length:
        return text

    truncated = text[:max_length].rstrip()
    if add_ellipsis:
        truncated += "..."

    return truncated


def extract_keywords(text: str, min_length: int = 3, limit: int = 8) -> List[str]:
    """
    Derive a small, ordered keyword set from a piece of text.

    Words are lowercased, punctuation is dropped, stopwords and words not longer
    than min_length are discarded, and duplicates keep their first position.

    Args:
        text: Source text (typically a title)
        min_length: Words must be longer than this to count
        limit: Maximum number of keywords returned

    Returns:
        List[str]: Keywords in order of first appearance
    """
    words = re.sub(r'[^\w\s-]', '', (text or '').lower()).split()
    keywords: List[str] = []
    for word in words:
        word = word.strip('-')
        if len(word) <= min_length or word in STOPWORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords


def make_image_filename(title: str, extension: str = "jpg", max_length: int = 50) -> str:
    """
    Build a filesystem/URL-safe filename for a featured image from a post title.

    Args:
        title: Post title
        extension: File extension without dot
        max_length: Maximum length of the slug part

    Returns:
        str: e.g. "ten-ways-to-brew-coffee.jpg"
    """
    slug = re.sub(r'[^a-z0-9]+', '-', (title or '').lower()).strip('-')
    slug = slug[:max_length].rstrip('-') or "featured-image"
    return f"{slug}.{extension}"
