from .company import Company
from .interview import Interview
from .user import User

__all__ = ["Company", "Interview", "User"]
