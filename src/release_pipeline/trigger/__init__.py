"""Trigger events and stage gates.

This module turns hosting-system events into pipeline decisions:
- GitHub push and pull_request payload parsing
- Deploy and release gates over the event type and commit message
- Bump kind selection from the commit message prefix
"""
