"""Issue tracker / PR host gateways."""

from .base import (
    BodyTransform,
    ConflictError,
    ExternalSyncError,
    GatewayError,
    GatewayProtocol,
    Issue,
    NotFoundError,
    PermissionDeniedError,
    PullRequest,
)
from .board import BoardConfig, BoardConfigError, load_board_config
from .fake import FakeGateway
from .git import FakeGitRepository, GitError, GitRepository
from .github import GhNotFoundError, GitHubCliGateway

__all__ = [
    "BoardConfig",
    "BoardConfigError",
    "BodyTransform",
    "ConflictError",
    "ExternalSyncError",
    "FakeGateway",
    "FakeGitRepository",
    "GatewayError",
    "GatewayProtocol",
    "GhNotFoundError",
    "GitError",
    "GitHubCliGateway",
    "GitRepository",
    "Issue",
    "NotFoundError",
    "PermissionDeniedError",
    "PullRequest",
    "load_board_config",
]
