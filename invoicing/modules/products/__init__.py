from .models import Product, Service

__all__ = ["Product", "Service"]
