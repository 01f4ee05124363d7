"""SupaCron pooled trading vault operator service."""

__version__ = "0.1.0"
