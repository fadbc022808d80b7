"""
Utility functions for EventBus:
    - ID generation
"""

import uuid


def new_msg_id() -> str:
    """
    Generate a globally unique message ID.

    Returns:
        str: UUID string for a new message.
    """
    return str(uuid.uuid4())
