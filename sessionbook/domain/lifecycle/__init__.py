"""Lifecycle domain: auto-completion, manual completion and cancellation."""
