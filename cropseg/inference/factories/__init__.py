"""
Inference Factories
===================

Factory pattern para creación de backends y sesiones.
"""
from .session_factory import SessionFactory

__all__ = [
    "SessionFactory",
]
