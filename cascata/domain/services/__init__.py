"""Serviços de domínio puros."""
