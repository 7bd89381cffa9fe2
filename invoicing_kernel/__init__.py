"""
Invoicing Kernel

The fiscal-document core of the fulfillment platform:
- Fiscal profile resolution (standard invoice, simplified receipt, export exempt)
- Row-locked document number allocation per serial and year
- Deterministic payload building with proportional discount allocation
- Retry-safe invoice lifecycle against an external fiscal gateway
"""

__version__ = "0.1.0"
