"""Paced bulk-approval and notification dispatcher."""

__version__ = "0.1.0"
