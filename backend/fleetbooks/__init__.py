"""FleetBooks financial reporting service."""
