"""vibewatch: report clustering and proximity notifications for community safety reports."""

__version__ = "0.1.0"
