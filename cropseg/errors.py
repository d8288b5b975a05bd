"""
Error Taxonomy
==============

Jerarquía de excepciones tipadas del core.

Categorías:
- InvalidPromptError: prompt inválido (punto fuera del foco, máscara con shape incorrecto)
- CollaboratorFailure: el backend de inferencia falló, crasheó o fue cancelado
- RegionOutOfBoundsError: región vacía después del clipping
- RegionNotEncodedError: consulta al tracker antes del primer encode
- SessionBusyError: llamada concurrente sobre la misma sesión

Las degeneraciones geométricas (cuerda de longitud cero, polígono vacío) NO
tienen excepción: se recuperan localmente.
"""


class CropSegError(Exception):
    """Base para todos los errores de cropseg."""


class InvalidPromptError(CropSegError, ValueError):
    """Prompt rechazado antes de mutar cualquier estado."""


class RegionOutOfBoundsError(CropSegError, ValueError):
    """La región pedida queda vacía después de recortarla a la imagen."""


class RegionNotEncodedError(CropSegError, RuntimeError):
    """Todavía no hay ninguna región codificada."""


class SessionBusyError(CropSegError, RuntimeError):
    """La sesión ya está procesando otro prompt."""


class CollaboratorFailure(CropSegError, RuntimeError):
    """
    Fallo del backend de inferencia.

    El core no distingue más allá de esta clase: las subclases existen para
    que el backend reporte la causa y para los logs.
    """

    kind = "unknown"

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


class TransportFailure(CollaboratorFailure):
    """El proceso/transport del backend no responde o murió."""

    kind = "transport"


class ComputationFailure(CollaboratorFailure):
    """El backend respondió pero la computación falló."""

    kind = "computation"


class CancelledFailure(CollaboratorFailure):
    """La tarea fue cancelada (terminal, igual que un fallo)."""

    kind = "cancelled"


__all__ = [
    "CropSegError",
    "InvalidPromptError",
    "RegionOutOfBoundsError",
    "RegionNotEncodedError",
    "SessionBusyError",
    "CollaboratorFailure",
    "TransportFailure",
    "ComputationFailure",
    "CancelledFailure",
]
