"""Domínio da cascata de SLA."""
