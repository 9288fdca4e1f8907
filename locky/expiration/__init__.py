"""
Expiration module.
Contains the leader-elected worker detecting expired locks.
"""

from locky.expiration.main import ExpirationWorker, run

__all__ = ["ExpirationWorker", "run"]
