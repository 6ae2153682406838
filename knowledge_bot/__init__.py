"""Knowledge Bot API: multi-tenant backend for companies, bots, uploads and subscriptions."""

__version__ = "0.1.0"
