"""openfollow core package."""

from follow.api_objects import FollowRunSummary
from follow.config import FollowConfig, load_config
from follow.constants import APP_NAME
from follow.follower import Follower

__all__ = [
    "APP_NAME",
    "FollowConfig",
    "FollowRunSummary",
    "Follower",
    "__version__",
    "load_config",
]
__version__ = "0.1.0"
