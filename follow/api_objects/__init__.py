"""Typed objects returned across the follower's public boundary."""

from follow.api_objects.types import FollowRunSummary

__all__ = ["FollowRunSummary"]
