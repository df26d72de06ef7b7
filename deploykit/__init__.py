"""deploykit - deployment orchestration and infrastructure reconciliation."""

__version__ = "0.1.0"
