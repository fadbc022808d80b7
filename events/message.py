"""
Message: Data structure representing one notification published on the EventBus.
"""

from dataclasses import dataclass


@dataclass
class Message:
    """
    Represents a single notification sent via the EventBus.

    Attributes:
        id (str): Unique identifier for the message.
        topic (str): The topic of the message (e.g., 'bus.dwell_complete', 'car.lap_complete').
        sender (str): ID of the sender (e.g., 'bus-0', 'car-17').
        payload (dict): Arbitrary dictionary containing message contents.
        ts (float): Simulation time (in milliseconds) when the message was created.
    """
    id: str
    topic: str
    sender: str
    payload: dict
    ts: float
