"""Bookings domain: the atomic booking transaction and provider booking queries."""
