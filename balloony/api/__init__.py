"""
API module for Balloony.

Provides REST endpoints for pipeline status.
"""

from balloony.api.status import status_bp

__all__ = ['status_bp']
