"""Conversation state."""
