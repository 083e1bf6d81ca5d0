"""Service adapters for the Pull Secret Rotator."""
