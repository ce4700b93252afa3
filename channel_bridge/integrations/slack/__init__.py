"""
Slack integration for the bridge.

This module provides:
- Web API calls (post, delete, user lookup, modals, OAuth exchange)
- Block Kit builders for the channel setup prompt
"""

from .blocks import SlackBlocks, SlackModals
from .client import SlackClient

__all__ = ["SlackClient", "SlackBlocks", "SlackModals"]
