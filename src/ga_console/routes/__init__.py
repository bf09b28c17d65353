"""
GA dashboard routes.

HTML page rendered with Jinja2 plus JSON endpoints over the session store.
"""

from .dashboard import create_dashboard_router

__all__ = ["create_dashboard_router"]
