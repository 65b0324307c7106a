"""Database models"""

from callrelay.models.call import Call, Transcript, Suggestion

__all__ = [
    "Call",
    "Transcript",
    "Suggestion",
]
