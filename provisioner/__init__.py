"""Workstation Provisioner — idempotent, step-based workstation setup."""

__version__ = "0.1.0"
