"""Authentication / authorization helpers.

Auth is kept small:

- Users table (email/password hash + role + access plan)
- Stateless HS256 JWT access tokens sent as `Authorization: Bearer <token>`

Logout is the client discarding its token; there is no server-side revocation.
"""

from .deps import get_current_user, require_admin
from .crud import bootstrap_admin_if_needed, create_user
from .security import Identity, TokenService

__all__ = [
    "get_current_user",
    "require_admin",
    "bootstrap_admin_if_needed",
    "create_user",
    "Identity",
    "TokenService",
]
