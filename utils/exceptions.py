"""
Custom Exception Classes for AutoPublisher

This module defines custom exceptions for better error handling and
categorization of failures across the campaign pipeline. The scheduler
relies on these classes to tell configuration problems, provider quota
problems and transient publishing failures apart.
"""

from typing import Optional


class AutoPublisherError(Exception):
    """Base exception for all AutoPublisher errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(AutoPublisherError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


class CredentialError(AutoPublisherError):
    """Raised when stored credentials cannot be encrypted or decrypted."""
    pass


# =============================================================================
# Generation Provider Errors
# =============================================================================

class GenerationError(AutoPublisherError):
    """Base exception for text/image generation provider errors."""
    pass


class ProviderNotConfigured(GenerationError):
    """Raised when the generation provider has no credentials configured."""
    pass


class QuotaExceeded(GenerationError):
    """Raised when the provider rejects a request for billing or quota reasons."""
    pass


class ProviderError(GenerationError):
    """Raised for any other generation provider failure."""
    pass


# =============================================================================
# Publishing Errors
# =============================================================================

class PublishError(AutoPublisherError):
    """Base exception for publish-target (WordPress) errors."""
    retryable = False


class AuthenticationFailed(PublishError):
    """Raised when the site rejects the stored credentials."""
    pass


class AccessDenied(PublishError):
    """Raised when the site user lacks the permission for the operation."""
    pass


class EndpointNotFound(PublishError):
    """Raised when the REST endpoint does not exist."""
    pass


class TransientNetworkError(PublishError):
    """Raised when the site cannot be reached (refused, DNS failure, timeout)."""
    retryable = True


class RemoteError(PublishError):
    """Raised for any other non-2xx response from the site."""

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(f"WordPress API error ({status}): {message}")


# =============================================================================
# Database Errors
# =============================================================================

class DatabaseError(AutoPublisherError):
    """Base exception for database-related errors."""
    pass


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""
    pass
