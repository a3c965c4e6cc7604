"""Snowflake client building blocks: framing, AMP armor and cache URLs, rendezvous, peers, events and STUN parsing."""

__version__ = "0.1.0"