"""Resource managers shared with satellites.

Managers are the only writers of their caches.  They raise domain errors
from ``fabric_core.errors`` (``NotFoundError``, ``ApiRequestError``,
``ValidationError``); turning those into user notifications happens at the
caller's UI boundary.
"""
