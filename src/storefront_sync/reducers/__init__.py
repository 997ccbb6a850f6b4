"""Pure state transition functions for the session and the resource stores."""
from . import collection, session
from .collection import reduce as reduce_collection
from .session import transition as transition_session

__all__ = [
    "collection",
    "session",
    "reduce_collection",
    "transition_session",
]
