"""Volunteer rewards engine core."""
