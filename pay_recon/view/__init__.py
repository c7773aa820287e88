"""Client-facing read side."""

from pay_recon.view.status import StatusSummary, UnifiedStatusView

__all__ = ["StatusSummary", "UnifiedStatusView"]
