"""
Partes (clientes) referenciables desde una factura.

Un cliente puede ser una persona natural o una organización; la factura
guarda el tipo y el identificador (referencia polimórfica).
"""

from .models import Person, Organization

__all__ = ["Person", "Organization"]
