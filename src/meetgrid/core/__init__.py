"""Availability aggregation and recommendation engine."""
