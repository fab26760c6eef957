"""Side-effecting operations driven by the retry orchestrator."""

from __future__ import annotations

from .base import SideEffectOperation
from .invoice import InvoiceOperation
from .waybill import WaybillOperation

__all__ = ["InvoiceOperation", "SideEffectOperation", "WaybillOperation"]
