"""flowdeck - workflow step execution engine for role-scoped agent sessions."""

__version__ = "0.1.0"
