from . import approvals, runs

__all__ = ["approvals", "runs"]
