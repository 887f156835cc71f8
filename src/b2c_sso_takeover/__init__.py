"""Deployment tooling for the Azure AD B2C SSO takeover custom policies."""

__version__ = "1.0.0"
