"""Hermez layer-2 wallet toolkit: identities, addresses and signed transactions."""

__version__ = "0.1.0"
