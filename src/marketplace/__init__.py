"""Peer-to-peer marketplace request, offer, and negotiation engine."""

__version__ = "0.1.0"
