"""
ORM models for companies, accounts, bots, files and notification settings.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .company import Company  # noqa: F401
from .accounts import AdminUser, User  # noqa: F401
from .bot import Bot  # noqa: F401
from .files import File, FileEvent  # noqa: F401
from .notifications import NotificationPreference  # noqa: F401
from .audit import AdminActionLog  # noqa: F401
