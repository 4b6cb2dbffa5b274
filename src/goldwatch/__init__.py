"""goldwatch — multi-source gold price aggregation engine."""

__version__ = "0.1.0"
