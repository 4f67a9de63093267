"""Models package."""

from .user import User
from .profile import Profile
from .usage_limit import UsageLimit
from .search_package import SearchPackage, UserSearchPackage
from .lead_search import LeadSearch
from .lead import Lead
