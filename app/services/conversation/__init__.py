"""Conversation lifecycle state machine."""
