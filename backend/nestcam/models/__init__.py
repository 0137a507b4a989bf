"""SQLAlchemy ORM models"""
from nestcam.models.accessory import CachedAccessory

__all__ = [
    "CachedAccessory",
]
