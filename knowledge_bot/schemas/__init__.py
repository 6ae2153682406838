"""
Public Pydantic schemas used by FastAPI routes and tests.

Schemas are grouped by domain module (bots, files, billing, etc.) next to
common reusable models such as the error envelope and message responses.
"""

from .common import MessageResponse  # noqa: F401
