"""Clients domain: per-provider client profiles and the completed-session counter."""
