"""Reservation and time-slot scheduling core for sports facility booking."""

__version__ = "0.1.0"
