"""Cascata de SLA para distribuição de leads do CRM imobiliário."""

__version__ = "0.1.0"
