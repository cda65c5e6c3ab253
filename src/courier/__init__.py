"""courier: a fluent configuration layer over a requests-backed HTTP client."""

__version__ = "0.1.0"
