"""
API v1 package.

Contains versioned API routes for the trust network exchange API.
"""

from trustnet.api.v1.routes import operator_router, router

__all__ = ["operator_router", "router"]
