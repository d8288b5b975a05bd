"""
Inference Backend Tests
=======================

Tests del adaptador Ultralytics SAM (con predictor inyectado) y de la
conversión máscaras → polígonos.

Diseño:
- Mock-based (no requiere ultralytics ni pesos del modelo)
- El predictor fake retorna resultados con la forma de ultralytics:
  results[0].masks.data → (K, H, W)
"""
from types import SimpleNamespace

import numpy as np
import pytest
from unittest.mock import Mock

from cropseg.errors import ComputationFailure, InvalidPromptError
from cropseg.inference.backends import InferenceBackend, UltralyticsSAMBackend
from cropseg.inference.backends.results import (
    drop_small_components,
    masks_to_polygons,
    stack_to_polygons,
)
from cropseg.inference.backends.ultralytics_sam import component_boxes
from cropseg.inference.prompts import BoxPrompt, MaskPrompt, PointPrompt


def square_mask(shape=(32, 32), top_left=(5, 5), size=10):
    mask = np.zeros(shape, dtype=np.uint8)
    x, y = top_left
    mask[y:y + size, x:x + size] = 1
    return mask


def create_predictor(masks=None):
    """Helper: predictor fake con la interfaz de ultralytics SAM Predictor."""
    predictor = Mock()
    data = np.stack([square_mask()]).astype(np.float32) if masks is None else masks
    predictor.return_value = [SimpleNamespace(masks=SimpleNamespace(data=data))]
    return predictor


@pytest.mark.unit
class TestMaskToPolygons:
    """Tests de extracción de polígonos (supervision + OpenCV)"""

    def test_square_mask_single_polygon(self):
        polygons = masks_to_polygons(square_mask())

        assert len(polygons) == 1
        polygon = polygons[0]
        assert polygon.shape[1] == 2
        assert polygon.min(axis=0).tolist() == [5, 5]
        assert polygon.max(axis=0).tolist() == [14, 14]

    def test_small_components_dropped(self):
        mask = square_mask()
        mask[25, 25] = 1
        mask[25, 26] = 1

        cleaned = drop_small_components(mask, min_pixels=6)

        assert cleaned.dtype == bool
        assert not cleaned[25, 25]
        assert int(cleaned.sum()) == 100
        assert len(masks_to_polygons(mask, min_pixels=6)) == 1

    def test_empty_mask(self):
        assert masks_to_polygons(np.zeros((10, 10), dtype=np.uint8)) == []

    def test_only_largest(self):
        mask = square_mask(size=10)
        mask[20:24, 20:24] = 1

        assert len(masks_to_polygons(mask)) == 2
        largest = masks_to_polygons(mask, only_largest=True)
        assert len(largest) == 1
        assert largest[0].min(axis=0).tolist() == [5, 5]

    def test_stack_only_largest_across_masks(self):
        stack = [square_mask(top_left=(20, 20), size=4), square_mask(size=10)]

        polygons = stack_to_polygons(stack, only_largest=True)

        assert len(polygons) == 1
        assert polygons[0].max(axis=0).tolist() == [14, 14]


@pytest.mark.unit
class TestUltralyticsSAMBackend:
    """Tests del adaptador con predictor inyectado"""

    def test_is_inference_backend(self):
        backend = UltralyticsSAMBackend(predictor=create_predictor())

        assert isinstance(backend, InferenceBackend)
        assert backend.supports_encoding_cache

    def test_encode_converts_rgb_to_bgr(self):
        predictor = create_predictor()
        backend = UltralyticsSAMBackend(predictor=predictor)
        pixels = np.zeros((4, 4, 3), dtype=np.uint8)
        pixels[..., 0] = 255  # rojo en RGB

        backend.encode(pixels)

        bgr = predictor.set_image.call_args.args[0]
        assert bgr[0, 0].tolist() == [0, 0, 255]

    def test_encode_runtime_error_is_computation_failure(self):
        predictor = create_predictor()
        predictor.set_image.side_effect = RuntimeError("CUDA out of memory")
        backend = UltralyticsSAMBackend(predictor=predictor)

        with pytest.raises(ComputationFailure) as exc_info:
            backend.encode(np.zeros((4, 4, 3), dtype=np.uint8))

        assert exc_info.value.operation == "encode"

    def test_point_prompt_kwargs(self):
        predictor = create_predictor()
        backend = UltralyticsSAMBackend(predictor=predictor)

        polygons = backend.predict(PointPrompt(np.array([[5, 5]]), np.array([[1, 1]])))

        predictor.assert_called_once_with(points=[[[5, 5], [1, 1]]], labels=[[1, 0]])
        assert len(polygons) == 1
        assert polygons[0].min(axis=0).tolist() == [5, 5]

    def test_box_prompt_kwargs(self):
        predictor = create_predictor()
        backend = UltralyticsSAMBackend(predictor=predictor)

        backend.predict(BoxPrompt(0, 0, 10, 10))

        predictor.assert_called_once_with(bboxes=[0, 0, 10, 10])

    def test_mask_prompt_one_box_per_component(self):
        predictor = create_predictor()
        backend = UltralyticsSAMBackend(predictor=predictor)
        raster = square_mask()
        raster[20:24, 20:30] = 1

        backend.predict(MaskPrompt(raster))

        bboxes = predictor.call_args.kwargs["bboxes"]
        assert sorted(bboxes) == [[5, 5, 15, 15], [20, 20, 30, 24]]

    def test_empty_mask_prompt_skips_predictor(self):
        predictor = create_predictor()
        backend = UltralyticsSAMBackend(predictor=predictor)

        assert backend.predict(MaskPrompt(np.zeros((8, 8), dtype=np.uint8))) == []
        predictor.assert_not_called()

    def test_no_masks_in_result(self):
        predictor = Mock()
        predictor.return_value = [SimpleNamespace(masks=None)]
        backend = UltralyticsSAMBackend(predictor=predictor)

        assert backend.predict(BoxPrompt(0, 0, 10, 10)) == []

    def test_return_all_false_keeps_largest(self):
        data = np.stack([square_mask(size=10), square_mask(top_left=(20, 20), size=4)]).astype(np.float32)
        backend = UltralyticsSAMBackend(predictor=create_predictor(data))

        polygons = backend.predict(BoxPrompt(0, 0, 30, 30), return_all=False)

        assert len(polygons) == 1
        assert polygons[0].max(axis=0).tolist() == [14, 14]

    def test_unsupported_prompt(self):
        backend = UltralyticsSAMBackend(predictor=create_predictor())

        with pytest.raises(InvalidPromptError):
            backend.predict("not a prompt")

    def test_encoding_cache_round_trip(self):
        predictor = create_predictor()
        backend = UltralyticsSAMBackend(predictor=predictor)

        with pytest.raises(InvalidPromptError):
            backend.persist_encoding()

        first = np.zeros((4, 4, 3), dtype=np.uint8)
        backend.encode(first)
        name = backend.persist_encoding()
        backend.encode(np.ones((4, 4, 3), dtype=np.uint8))
        backend.select_encoding(name)

        assert name.startswith("encoding-")
        assert predictor.set_image.call_count == 3
        assert predictor.set_image.call_args.args[0].max() == 0

        backend.delete_encoding(name)
        with pytest.raises(InvalidPromptError):
            backend.select_encoding(name)

    def test_close_resets_predictor(self):
        predictor = create_predictor()
        backend = UltralyticsSAMBackend(predictor=predictor)

        backend.close()

        predictor.reset_image.assert_called_once_with()

    def test_component_boxes(self):
        assert component_boxes(square_mask()) == [[5, 5, 15, 15]]
        assert component_boxes(np.zeros((4, 4))) == []
