"""diffsync: live working-tree and pull-request diff engine."""

__version__ = "0.1.0"
