"""
Durable store for the mock interview backend.
Keeps completed interviews and snapshots of interviews still in progress.
"""

from .archive import SessionArchive

__all__ = ['SessionArchive']
