"""IssueHub backend: issue tracking API with real-time collaboration."""

__version__ = "1.0.0"
