"""
Base Inference Backend Interface
================================

ABC para todos los backends de segmentación promptable.
Define el contrato explícito que el SegmentationSession consume.

Diseño:
- Interface clara y explícita (no duck typing implícito)
- encode/predict abstractos: todo backend los implementa
- Cache de encodings opcional: supports_encoding_cache + métodos que
  por default lanzan NotImplementedError
- Coordenadas SIEMPRE locales al crop encodeado: el backend nunca ve
  coordenadas de imagen completa (la sesión traduce en ambas direcciones)

Failures:
- Un backend reporta fallos con TransportFailure / ComputationFailure /
  CancelledFailure; cualquier otra excepción la envuelve la sesión
"""
from abc import ABC, abstractmethod
from typing import List, Union

import numpy as np

from ..prompts import BoxPrompt, MaskPrompt, PointPrompt


Prompt = Union[PointPrompt, BoxPrompt, MaskPrompt]


class InferenceBackend(ABC):
    """
    Clase base abstracta para backends de inferencia.

    Contract:
    - encode: Encodea un crop RGB uint8 (REQUIRED), reemplaza lo anterior
    - predict: Polígonos para un prompt en coordenadas locales (REQUIRED)
    - supports_encoding_cache: Si soporta persist/select/delete (OPTIONAL, default False)
    - close: Libera recursos (OPTIONAL, default no-op)

    Implementaciones concretas:
    - UltralyticsSAMBackend: SAM de Ultralytics (extra opcional 'sam')
    """

    @abstractmethod
    def encode(self, pixels: np.ndarray) -> None:
        """
        Encodea el crop (bloqueante).

        Args:
            pixels: Array (H, W, 3) uint8 RGB, C-contiguo

        Raises:
            CollaboratorFailure: Si el encode falla o se cancela
        """
        pass

    @abstractmethod
    def predict(self, prompt: Prompt, return_all: bool = True) -> List[np.ndarray]:
        """
        Ejecuta el decoder sobre el último crop encodeado (bloqueante).

        Args:
            prompt: Prompt en coordenadas locales del crop
            return_all: False = solo el polígono más grande

        Returns:
            Lista de polígonos (N, 2) en coordenadas locales

        Raises:
            CollaboratorFailure: Si la predicción falla o se cancela
        """
        pass

    @property
    def supports_encoding_cache(self) -> bool:
        """
        Si el backend puede guardar y restaurar encodings con nombre.

        Default: False
        """
        return False

    def persist_encoding(self) -> str:
        """
        Guarda el encoding actual y retorna su nombre.

        Raises:
            NotImplementedError: Si backend no soporta cache de encodings
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} does not support encoding cache. "
            f"supports_encoding_cache={self.supports_encoding_cache}"
        )

    def select_encoding(self, name: str) -> None:
        """
        Restaura un encoding guardado como encoding activo.

        Raises:
            NotImplementedError: Si backend no soporta cache de encodings
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} does not support encoding cache. "
            f"supports_encoding_cache={self.supports_encoding_cache}"
        )

    def delete_encoding(self, name: str) -> None:
        """
        Borra un encoding guardado.

        Raises:
            NotImplementedError: Si backend no soporta cache de encodings
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} does not support encoding cache. "
            f"supports_encoding_cache={self.supports_encoding_cache}"
        )

    def close(self) -> None:
        """Libera recursos del backend (default: nada que liberar)."""
        pass
