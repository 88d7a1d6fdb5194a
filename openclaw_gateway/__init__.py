"""Service-control and status gateway for the openclaw container stack."""

__version__ = "0.1.0"
