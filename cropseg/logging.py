"""
Structured Logging
==================

Bounded Context: observabilidad de la sesión de segmentación.

Cada prompt (points / box / mask / batch) corre dentro de un trace_id propio;
todas las líneas que emite el motor de decisión y el backend durante ese
prompt quedan correlacionadas por ese id.

Design:
- Salida JSON única (python-json-logger), stdout o archivo con rotación
- trace_id vía ContextVar (seguro entre threads y tasks)
- Helpers con campos estables: action/reason para decisiones,
  operation/duration_ms para llamadas al backend
- Los mensajes conservan emojis para lectura humana del JSON

Usage:
    from cropseg.logging import setup_logging, trace_context, generate_trace_id

    setup_logging(level="DEBUG", log_file="logs/cropseg.log")

    with trace_context(generate_trace_id("box")):
        session.process_box(box)
"""
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

_trace_id: ContextVar[Optional[str]] = ContextVar('cropseg_trace_id', default=None)

JSON_FORMAT = '%(timestamp)s %(level)s %(logger)s %(message)s'


# ============================================================================
# Trace Context
# ============================================================================

def get_trace_id() -> Optional[str]:
    """trace_id activo, o None fuera de un trace_context()."""
    return _trace_id.get()


def generate_trace_id(prefix: str = "trace") -> str:
    """
    Genera un trace ID corto: "{prefix}-{8 hex}".

    Args:
        prefix: Tipo de prompt ("points", "box", "mask", "batch")
    """
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """
    Activa un trace_id durante el bloque y restaura el anterior al salir.

    Los contextos se anidan: el interno tapa al externo hasta que termina.

    Args:
        trace_id: ID a propagar. None genera uno con prefijo "trace".

    Yields:
        El trace_id activo
    """
    active = trace_id or generate_trace_id()
    token = _trace_id.set(active)
    try:
        yield active
    finally:
        _trace_id.reset(token)


# ============================================================================
# Formatter & Setup
# ============================================================================

class CropSegJsonFormatter(jsonlogger.JsonFormatter):
    """
    JsonFormatter con level/logger explícitos, trace_id del contexto y
    campos estáticos (environment, host, ...).

    Los campos que ya trae el record (extra=...) nunca se pisan.
    """

    def __init__(self, *args, static_fields: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.static_fields = dict(static_fields or {})

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['level'] = log_record.get('level') or record.levelname
        log_record['logger'] = log_record.get('logger') or record.name

        trace_id = get_trace_id()
        if trace_id and not log_record.get('trace_id'):
            log_record['trace_id'] = trace_id

        for key, value in self.static_fields.items():
            log_record.setdefault(key, value)


def _build_handler(log_file: Optional[str], max_bytes: int, backup_count: int) -> logging.Handler:
    if not log_file:
        return logging.StreamHandler(sys.stdout)

    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    print(f"📄 Logging to {path} (rotation at {max_bytes // 1024} KB, {backup_count} backups)", file=sys.stderr)
    return RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8',
    )


def setup_logging(
    level: str = "INFO",
    indent: Optional[int] = None,
    add_fields: Optional[Dict[str, Any]] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Instala un único handler JSON en el root logger.

    Reemplaza los handlers existentes: llamar una vez al arrancar el proceso.

    Args:
        level: DEBUG | INFO | WARNING | ERROR | CRITICAL
        indent: Indent del JSON (None = una línea por record)
        add_fields: Campos estáticos agregados a cada record
        log_file: Archivo destino con rotación (None = stdout)
        max_bytes: Tamaño que dispara la rotación
        backup_count: Archivos rotados a conservar
    """
    handler = _build_handler(log_file, max_bytes, backup_count)
    handler.setFormatter(CropSegJsonFormatter(
        JSON_FORMAT,
        timestamp=True,
        json_indent=indent,
        static_fields=add_fields,
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))


def setup_logging_from_config(settings) -> None:
    """Atajo: setup_logging() desde un LoggingSettings validado."""
    setup_logging(
        level=settings.level,
        indent=settings.json_indent,
        log_file=settings.file,
        max_bytes=settings.max_bytes,
        backup_count=settings.backup_count,
    )


# ============================================================================
# Helpers
# ============================================================================

def _region_fields(region) -> list:
    return [region.x1, region.y1, region.x2, region.y2]


def log_reencode_decision(
    logger: logging.Logger,
    action: str,
    reason: str,
    current_region=None,
    target_region=None,
    prompt_kind: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    """
    Loguea el veredicto del motor de re-encoding.

    reuse va a DEBUG (caso frecuente); extend/recrop/initial van a INFO
    porque implican un encode costoso.

    Args:
        logger: Logger del módulo que decide
        action: reuse | extend | recrop | initial
        reason: Explicación corta del veredicto
        current_region: Región encodeada antes de decidir
        target_region: Región del plan
        prompt_kind: points | box | mask | batch
        trace_id: Override del trace_id del contexto
    """
    extra: Dict[str, Any] = {
        "component": "decision_engine",
        "action": action,
        "reason": reason,
        "trace_id": trace_id or get_trace_id(),
    }
    if prompt_kind:
        extra["prompt_kind"] = prompt_kind
    if current_region is not None:
        extra["current_region"] = _region_fields(current_region)
    if target_region is not None:
        extra["target_region"] = _region_fields(target_region)

    if action == 'reuse':
        logger.debug(f"♻️ Reusing encoded region: {reason}", extra=extra)
    else:
        logger.info(f"✂️ Re-encode ({action}): {target_region} - {reason}", extra=extra)


def log_backend_call(
    logger: logging.Logger,
    operation: str,
    duration_ms: float,
    success: bool = True,
    trace_id: Optional[str] = None,
    **context: Any
) -> None:
    """
    Loguea una llamada bloqueante al backend (encode, predict, cache ops).

    Las exitosas van a DEBUG, las fallidas a WARNING; el error en sí lo
    reporta log_error_with_context().
    """
    extra: Dict[str, Any] = {
        "component": "inference_backend",
        "operation": operation,
        "duration_ms": round(duration_ms, 2),
        "success": success,
        "trace_id": trace_id or get_trace_id(),
        **context,
    }

    if success:
        logger.debug(f"🧠 Backend {operation} ({duration_ms:.1f} ms)", extra=extra)
    else:
        logger.warning(f"⚠️ Backend {operation} failed after {duration_ms:.1f} ms", extra=extra)


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    component: str = "unknown",
    event: Optional[str] = None,
    trace_id: Optional[str] = None,
    **context: Any
) -> None:
    """
    Loguea un error con component/event y, si hay excepción, su tipo y traceback.

    Args:
        logger: Logger instance
        message: Mensaje base
        exception: Excepción capturada
        component: Componente que falló (segmentation_session, backend, cli)
        event: Operación en curso (encode, predict, ...)
        trace_id: Override del trace_id del contexto
        **context: Campos extra (region, crop_shape, ...)
    """
    extra: Dict[str, Any] = {"component": component, "trace_id": trace_id or get_trace_id()}
    if event:
        extra["event"] = event
    if exception is not None:
        extra["error_type"] = type(exception).__name__
        extra["error_message"] = str(exception)
    extra.update(context)

    if exception is not None:
        logger.error(f"{message}: {exception}", extra=extra, exc_info=exception)
    else:
        logger.error(message, extra=extra)


def get_component_logger(component: str) -> logging.Logger:
    """Logger bajo el namespace cropseg.{component}."""
    return logging.getLogger(f"cropseg.{component}")


__all__ = [
    "CropSegJsonFormatter",
    "setup_logging",
    "setup_logging_from_config",
    "trace_context",
    "get_trace_id",
    "generate_trace_id",
    "log_reencode_decision",
    "log_backend_call",
    "log_error_with_context",
    "get_component_logger",
]
