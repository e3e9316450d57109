"""Business logic services.

Services are called by route handlers and orchestrate the upstream client,
the media store and database operations.
"""
