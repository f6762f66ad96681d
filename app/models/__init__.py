from .base import Base
from .error_code import ErrorCode
from .feedback import AppFeedback, AppLike
from .profile import Profile

__all__ = [
    "Base",
    "ErrorCode",
    "Profile",
    "AppLike",
    "AppFeedback",
]
