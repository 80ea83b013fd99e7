"""Infraestrutura: banco, logging, scheduler, jobs e serviços."""
