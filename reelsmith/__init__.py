"""Approval-gated agent orchestration for generative video production."""

__version__ = "0.1.0"
