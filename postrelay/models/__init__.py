from .scheduled_job import ScheduledJob, Platform
from .social_account import SocialAccount

__all__ = [
    "ScheduledJob",
    "Platform",
    "SocialAccount",
]
