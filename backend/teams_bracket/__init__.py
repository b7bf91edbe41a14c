"""Team-vs-team bracket engine: groups, knockout trees, results and standings."""

__version__ = "0.1.0"
