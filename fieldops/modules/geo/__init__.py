"""Geofence containment, presence tracking and geofence storage."""
