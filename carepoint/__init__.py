"""CarePoint: nearby pharmacies, hospitals and medicine availability."""

__version__ = "0.1.0"
