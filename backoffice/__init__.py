"""Back-office services for invoicing, client portal and approval workflows."""

__version__ = "0.3.0"
