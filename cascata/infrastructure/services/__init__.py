"""Serviços de infraestrutura."""
