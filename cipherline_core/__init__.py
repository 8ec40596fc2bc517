"""
Cipherline Core Package
=======================
Key lifecycle and encrypted message exchange for Cipherline clients.

Provides:
- RSA key codec with a strict PEM envelope
- KeyStore with at-most-one public key per identity and a local key vault
- MessageExchange with local fallback and best-effort notarization
- Session hook that provisions keys on sign-in
"""

__version__ = "0.1.0"
