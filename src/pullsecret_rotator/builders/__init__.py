"""Builders turning resource specs into working state."""
