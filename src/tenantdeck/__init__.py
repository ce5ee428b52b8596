"""tenantdeck - manage container-backed projects on a multi-tenant hosting control plane."""

__version__ = "0.1.0"
