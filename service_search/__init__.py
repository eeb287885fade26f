"""Multi-tenant Search Gateway."""
