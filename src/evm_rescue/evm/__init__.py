"""Signer-aware client components built on top of the endpoint pool."""
