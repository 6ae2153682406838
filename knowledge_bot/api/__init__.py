"""HTTP layer: the FastAPI application, request guards and route modules."""
