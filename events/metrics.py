"""
EventMetrics: Tracks simple statistics for EventBus message flow.
"""


class EventMetrics:
    """
    Tracks metrics for published, delivered and polled messages.

    Attributes:
        published (int): Total number of messages published.
        delivered (int): Number of successful handler invocations.
        handler_errors (int): Number of handler invocations that raised.
        polled (int): Number of messages drained through poll().
    """

    def __init__(self):
        """Initialize all counters to zero."""
        self.published = 0
        self.delivered = 0
        self.handler_errors = 0
        self.polled = 0

    def report(self) -> dict:
        """
        Return a snapshot of current metrics.

        Returns:
            dict: Dictionary containing 'published', 'delivered', 'handler_errors' and 'polled' counters.
        """
        return {
            "published": self.published,
            "delivered": self.delivered,
            "handler_errors": self.handler_errors,
            "polled": self.polled,
        }
