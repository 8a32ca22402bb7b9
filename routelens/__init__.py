"""RouteLens: scheduled reachability and performance probing."""

__version__ = "0.1.0"
