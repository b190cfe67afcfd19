"""Exception taxonomy shared by the pipeline stages.

Permanent errors advance the record's status flag so it is never retried,
transient errors leave the record untouched for the next invocation, and
rate-limit errors trigger a cooldown followed by a single retry.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for all pipeline failures."""


class PipelineConfigurationError(PipelineError):
    """Required configuration (credentials, endpoints) is missing."""


class PermanentPipelineError(PipelineError):
    """The record can never succeed; do not spend quota retrying it."""


class InvalidIdentifier(PermanentPipelineError, ValueError):
    """Identifier does not resolve to exactly one owner/repo pair."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Invalid repository identifier: {identifier!r}")


class RepositoryNotFound(PermanentPipelineError):
    """Upstream reported 404 for the repository."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Repository not found: {identifier}")


class TransientPipelineError(PipelineError):
    """Network failure, provider 5xx or malformed response; retry next batch."""


class RateLimitError(TransientPipelineError):
    """Upstream returned 429; cool down before retrying."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after
