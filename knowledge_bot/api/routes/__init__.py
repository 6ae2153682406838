"""
API route modules.

This package contains subrouters for:
- Auth: registration, login, admin-panel login and current user
- Companies, bots and bot management
- Uploads and files
- Notification preferences and the ingestion pipeline API
- Subscription, billing and admin billing
- Debug helpers (mounted only when enabled)

Routers are included from knowledge_bot.api.main (under the /api/v1 prefix).
"""
