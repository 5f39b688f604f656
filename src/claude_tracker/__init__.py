"""Credential and usage state engine for several Claude Code accounts."""

__version__ = "0.1.0"
