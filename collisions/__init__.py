"""NYC traffic-collision aggregation pipeline and dashboard."""

__version__ = "0.1.0"
