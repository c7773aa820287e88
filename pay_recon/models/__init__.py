"""Domain models for payment reconciliation."""

from pay_recon.models.base import Event

__all__ = ["Event"]
