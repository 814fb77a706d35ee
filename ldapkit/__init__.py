"""LDAP message building blocks: BER packets, filters, requests, entries and errors."""

__version__ = "0.1.0"
__all__ = ["ber", "errors", "filter", "requests", "entry"]