"""Currency catalog adapters."""

from .static import StaticCurrencyCatalog

__all__ = ["StaticCurrencyCatalog"]
