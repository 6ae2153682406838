"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each aggregate. Tenant isolation is
expressed as explicit company filters in the queries that need it; ownership
decisions are taken by the service layer.
"""
