"""
Annotation Geometry Tests
=========================

Tests de simplificación, RLE y composición de labels.

Invariantes testeadas:
1. douglas_peucker() → nivel 0 es identidad, monotonía en epsilon
2. contour_to_rle() → suma de runs == width * height (siempre)
3. contour_to_spans() → coincide con un fill even/odd de referencia
4. build_label() → last-writer-wins, 0 = background
"""
import cv2
import numpy as np
import pytest

from cropseg.annotation import (
    build_label,
    contour_to_rle,
    contour_to_spans,
    decode_rle,
    douglas_peucker,
    encode_mask_rle,
    flatten_spans,
    remove_consecutive_duplicates,
    runs_to_spans,
    spans_to_runs,
    Mask,
)
from cropseg.annotation.compositor import label_dtype


def noisy_circle(n=200, radius=50.0, noise=1.5, seed=7):
    """Helper: contorno circular con ruido (muchos vértices casi colineales)."""
    rng = np.random.default_rng(seed)
    angles = np.linspace(0, 2 * np.pi, n, endpoint=False)
    r = radius + rng.uniform(-noise, noise, size=n)
    return np.stack([60 + r * np.cos(angles), 60 + r * np.sin(angles)], axis=1)


def reference_fill(polygon, width, height):
    """
    Fill even/odd de referencia: un píxel (x, y) es foreground si el punto
    (x, y + 0.5) cae adentro del polígono.
    """
    contour = np.asarray(polygon, dtype=np.float32).reshape(-1, 1, 2)
    mask = np.zeros((height, width), dtype=bool)
    for y in range(height):
        for x in range(width):
            mask[y, x] = cv2.pointPolygonTest(contour, (float(x), y + 0.5), False) > 0
    return mask


# Aristas con pendiente dx/dy impar o fraccionaria: ninguna muestra cae sobre un borde
DIAMOND = [(10, 2), (18, 10), (10, 18), (2, 10)]
CHEVRON = [(2, 2), (12, 12), (22, 2), (28, 8), (14, 22)]


@pytest.mark.unit
@pytest.mark.annotation
class TestDouglasPeucker:
    """Tests de Ramer-Douglas-Peucker"""

    def test_near_collinear_middle_point_removed(self):
        """
        Invariante: [(0,0), (1,0.01), (2,0)] con epsilon 1 → solo extremos.
        """
        result = douglas_peucker([(0, 0), (1, 0.01), (2, 0)], epsilon=1)

        assert result.tolist() == [[0.0, 0.0], [2.0, 0.0]]

    def test_level_zero_is_identity(self):
        """
        Invariante: epsilon <= 0 retorna el contorno sin cambios (copia).
        """
        points = noisy_circle()

        result = douglas_peucker(points, epsilon=0)

        np.testing.assert_array_equal(result, points)
        assert result is not points

    def test_short_input_unchanged(self):
        """Menos de 3 puntos: nada que simplificar."""
        result = douglas_peucker([(0, 0), (5, 5)], epsilon=10)

        assert result.tolist() == [[0.0, 0.0], [5.0, 5.0]]

    def test_vertex_count_monotonic_in_epsilon(self):
        """
        Invariante: más epsilon → nunca más vértices.

        Property: ∀ e1 < e2, len(dp(c, e2)) <= len(dp(c, e1))
        """
        points = noisy_circle()
        counts = [len(douglas_peucker(points, epsilon=e)) for e in (0.5, 1.0, 1.5, 2.0, 3.0, 5.0, 10.0)]

        assert counts == sorted(counts, reverse=True)
        assert counts[0] < len(points)

    def test_endpoints_always_kept(self):
        """Invariante: primer y último vértice se conservan."""
        points = noisy_circle()

        result = douglas_peucker(points, epsilon=20)

        np.testing.assert_array_equal(result[0], points[0])
        np.testing.assert_array_equal(result[-1], points[-1])

    def test_retained_vertices_are_subset_of_input(self):
        """Invariante: DP solo elimina vértices, nunca inventa nuevos."""
        points = noisy_circle()

        result = douglas_peucker(points, epsilon=2.0)

        original = {tuple(p) for p in points.tolist()}
        assert all(tuple(p) in original for p in result.tolist())

    def test_closed_contour_degenerate_chord(self):
        """
        Cuerda degenerada (primero == último): se usa distancia euclídea al extremo.
        """
        closed = [(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)]

        result = douglas_peucker(closed, epsilon=1)

        # (10, 10) es el más lejano al extremo (0, 0): se conserva
        assert [10.0, 10.0] in result.tolist()

    def test_deterministic(self):
        """Misma entrada → misma salida."""
        points = noisy_circle()

        a = douglas_peucker(points, epsilon=1.5)
        b = douglas_peucker(points, epsilon=1.5)

        np.testing.assert_array_equal(a, b)


@pytest.mark.unit
@pytest.mark.annotation
class TestRemoveConsecutiveDuplicates:
    """Tests de limpieza de vértices repetidos"""

    def test_removes_adjacent_and_closing_duplicates(self):
        points = np.array([[0, 0], [0, 0], [1, 1], [0, 0]])

        result = remove_consecutive_duplicates(points)

        assert result.tolist() == [[0, 0], [1, 1]]

    def test_all_identical_collapses_to_one(self):
        points = np.array([[3, 3], [3, 3], [3, 3]])

        result = remove_consecutive_duplicates(points)

        assert result.tolist() == [[3, 3]]


@pytest.mark.unit
@pytest.mark.annotation
class TestPolygonRLE:
    """Tests del rasterizador polígono → RLE"""

    @pytest.mark.parametrize("polygon,width,height", [
        (DIAMOND, 20, 20),
        (CHEVRON, 32, 32),
        ([(0, 0), (1, 0), (1, 1), (0, 1)], 1, 1),
        ([(0, 0), (5, 5)], 10, 10),                 # 2 vértices
        ([(0, 0), (1, 1), (2, 2)], 10, 10),         # colineales
        ([], 7, 3),                                 # vacío
        ([(-50, -50), (-10, -50), (-10, -10)], 10, 10),  # fuera del canvas
        ([(-5, -5), (50, -5), (50, 50), (-5, 50)], 8, 6),  # cubre todo el canvas
    ])
    def test_runs_sum_to_canvas_area(self, polygon, width, height):
        """
        Invariante: la suma de runs alternados es siempre width * height.
        """
        runs = contour_to_rle(polygon, width, height)

        assert sum(runs) == width * height
        assert all(r >= 0 for r in runs)
        assert len(runs) % 2 == 1, "Empieza y termina con background"

    @pytest.mark.parametrize("polygon", [[(0, 0), (5, 5)], [(0, 0), (1, 1), (2, 2)], []])
    def test_degenerate_polygon_is_all_background(self, polygon):
        """Polígonos sin área → un único run de background."""
        assert contour_to_rle(polygon, 10, 10) == [100]

    def test_covering_polygon_is_all_foreground(self):
        runs = contour_to_rle([(-5, -5), (50, -5), (50, 50), (-5, 50)], 8, 6)

        assert sum(runs[1::2]) == 48
        assert decode_rle(runs_to_spans(runs), 8, 6).all()

    @pytest.mark.parametrize("polygon,width,height", [
        (DIAMOND, 20, 20),
        (CHEVRON, 32, 32),
    ])
    def test_matches_even_odd_reference_fill(self, polygon, width, height):
        """
        Invariante: decode(contour_to_spans(p)) == fill even/odd de referencia.
        """
        spans = flatten_spans(contour_to_spans(polygon, width, height))

        decoded = decode_rle(spans, width, height)

        np.testing.assert_array_equal(decoded, reference_fill(polygon, width, height))
        assert decoded.any()

    def test_chevron_notch_splits_rows(self):
        """Polígono cóncavo: filas por encima del vértice interior tienen dos spans."""
        spans = contour_to_spans(CHEVRON, 32, 32)

        rows = [start // 32 for start, _ in spans]
        assert any(rows.count(r) == 2 for r in set(rows))

    def test_spans_never_cross_rows(self):
        """Invariante: ningún span se extiende a la fila siguiente."""
        width = 32
        for start, length in contour_to_spans(CHEVRON, width, 32):
            assert start // width == (start + length - 1) // width

    def test_layout_conversions_agree(self):
        """Runs alternados y spans describen los mismos píxeles."""
        runs = contour_to_rle(CHEVRON, 32, 32)
        spans = flatten_spans(contour_to_spans(CHEVRON, 32, 32))

        assert runs_to_spans(runs) == spans
        assert spans_to_runs(spans, 32 * 32) == runs

    def test_encode_mask_rle_matches_decoded_mask(self):
        mask = reference_fill(CHEVRON, 32, 32)

        spans = encode_mask_rle(mask)

        np.testing.assert_array_equal(decode_rle(spans, 32, 32), mask)


@pytest.mark.unit
@pytest.mark.annotation
class TestMaskSimplificationLadder:
    """Tests de la escalera de simplificación de Mask"""

    def create_mask(self):
        contour = np.rint(noisy_circle()).astype(np.int32)
        return Mask.from_contour(contour, width=128, height=128, name="blob")

    def test_from_contour_has_valid_rle(self):
        mask = self.create_mask()

        assert mask.rle_valid
        assert mask.get_rle() == flatten_spans(contour_to_spans(mask.contour, 128, 128))

    def test_simplify_then_complicate_restores_original(self):
        """
        Invariante: complicate() deshace simplify() exactamente (nivel 0 = original).
        """
        mask = self.create_mask()
        original = mask.get_contour().copy()

        mask.simplify()
        mask.simplify()
        mask.complicate()
        mask.complicate()

        assert mask.simplification_level == 0
        np.testing.assert_array_equal(mask.get_contour(), original)
        assert mask.rle_valid

    def test_simplify_reduces_vertices_monotonically(self):
        mask = self.create_mask()
        counts = [len(mask)]

        for _ in range(6):
            mask.simplify()
            counts.append(len(mask))

        assert counts == sorted(counts, reverse=True)
        assert counts[-1] < counts[0]
        assert mask.simplification_level == pytest.approx(3.0)

    def test_levels_are_memoized(self):
        """
        Invariante: cada nivel se calcula como máximo una vez.
        """
        from unittest.mock import patch
        import cropseg.annotation.mask as mask_module

        mask = self.create_mask()
        with patch.object(mask_module, "douglas_peucker", wraps=mask_module.douglas_peucker) as dp:
            first = mask.simplify()
            mask.complicate()
            second = mask.simplify()

        assert dp.call_count == 1
        assert first is second
        assert mask.cached_levels == [0.0, 0.5]

    def test_complicate_at_level_zero_is_noop(self):
        mask = self.create_mask()
        before = mask.get_contour()

        after = mask.complicate()

        assert after is before
        assert mask.simplification_level == 0

    def test_rle_recomputed_from_simplified_contour(self):
        """
        Invariante: fuera del nivel 0 el RLE se deriva del contorno actual.
        """
        mask = self.create_mask()
        original_rle = list(mask.get_rle())

        for _ in range(10):
            mask.simplify()

        assert not mask.rle_valid
        expected = flatten_spans(contour_to_spans(mask.get_contour(), 128, 128))
        assert mask.get_rle() == expected

        for _ in range(10):
            mask.complicate()
        assert mask.get_rle() == original_rle

    def test_stale_rle_without_canvas_raises(self):
        contour = np.rint(noisy_circle()).astype(np.int32)
        mask = Mask(contour, rle=[0, 10])

        assert mask.get_rle() == [0, 10]
        mask.simplify()
        with pytest.raises(ValueError):
            mask.get_rle()

    def test_set_contour_resets_cache(self):
        mask = self.create_mask()
        mask.simplify()

        mask.set_contour([(0, 0), (10, 0), (10, 10), (0, 10)])

        assert mask.simplification_level == 0
        assert mask.cached_levels == [0.0]
        assert not mask.rle_valid
        assert sum(length for length in mask.get_rle()[1::2]) > 0
        assert mask.rle_valid

    def test_clear_empties_everything(self):
        mask = self.create_mask()
        mask.simplify()

        mask.clear()

        assert len(mask) == 0
        assert mask.simplification_level == 0
        assert mask.get_rle() == []

    def test_identity_and_name(self):
        a = self.create_mask()
        b = self.create_mask()

        assert a.id != b.id
        assert a.name == "blob"
        a.name = "car"
        assert a.name == "car"
        with pytest.raises(ValueError):
            a.name = None


@pytest.mark.unit
@pytest.mark.annotation
class TestBuildLabel:
    """Tests del compositor de labels"""

    def create_overlapping_masks(self):
        """Helper: dos cuadrados 3×3 en un canvas 5×5 que se pisan en (2, 2)."""
        first = Mask([(0, 0), (2, 0), (2, 2), (0, 2)], rle=[0, 3, 5, 3, 10, 3], width=5, height=5)
        second = Mask([(2, 2), (4, 2), (4, 4), (2, 4)], rle=[12, 3, 17, 3, 22, 3], width=5, height=5)
        return first, second

    def test_overlap_last_writer_wins(self):
        """
        Invariante: en solapamientos gana la última mask de la lista.
        """
        first, second = self.create_overlapping_masks()

        label = build_label(5, 5, [first, second])

        assert label.shape == (5, 5)
        assert label[2, 2] == 2
        assert int((label == 1).sum()) == 8
        assert int((label == 2).sum()) == 9
        assert int((label == 0).sum()) == 8

    def test_order_matters(self):
        first, second = self.create_overlapping_masks()

        label = build_label(5, 5, [second, first])

        assert label[2, 2] == 2
        assert int((label == 2).sum()) == 9
        assert label[4, 4] == 1

    def test_empty_masks_all_background(self):
        label = build_label(4, 3, [])

        assert label.shape == (3, 4)
        assert not label.any()

    def test_out_buffer_is_reset_and_reused(self):
        first, second = self.create_overlapping_masks()
        out = np.full((5, 5), 99, dtype=np.uint16)

        label = build_label(5, 5, [first], out=out)

        assert label is out
        assert int((out == 99).sum()) == 0
        assert int((out == 1).sum()) == 9

    def test_out_buffer_wrong_shape_raises(self):
        with pytest.raises(ValueError):
            build_label(5, 5, [], out=np.zeros((4, 5), dtype=np.uint16))

    def test_out_buffer_too_narrow_for_mask_count(self):
        """
        Invariante: label 0 reservado; un buffer uint8 no puede etiquetar 256 masks.
        """
        masks = [Mask([(0, 0), (1, 0), (1, 1)], rle=[i, 1], width=16, height=16) for i in range(256)]
        out = np.full((16, 16), 7, dtype=np.uint8)

        with pytest.raises(ValueError, match="cannot hold 256 labels"):
            build_label(16, 16, masks, out=out)

        assert (out == 7).all()

    def test_out_buffer_exact_capacity(self):
        masks = [Mask([(0, 0), (1, 0), (1, 1)], rle=[i, 1], width=16, height=16) for i in range(255)]

        label = build_label(16, 16, masks, out=np.zeros((16, 16), dtype=np.uint8))

        assert label.reshape(-1)[254] == 255
        assert label.reshape(-1)[255] == 0

    @pytest.mark.parametrize("polygon,width,height", [
        (DIAMOND, 20, 20),
        (CHEVRON, 32, 32),
    ])
    def test_round_trip_through_mask_matches_reference_fill(self, polygon, width, height):
        """
        Invariante: build_label sobre una Mask del polígono == fill even/odd de referencia.
        """
        expected = reference_fill(polygon, width, height)

        from_contour = build_label(width, height, [Mask.from_contour(polygon, width, height)])
        from_runs = build_label(width, height, [
            Mask(polygon, runs=contour_to_rle(polygon, width, height), width=width, height=height)
        ])

        np.testing.assert_array_equal(from_contour == 1, expected)
        np.testing.assert_array_equal(from_runs == 1, expected)

    def test_runs_passed_as_spans_rejected(self):
        """Runs alternados (largo impar) no se aceptan como rle de spans."""
        square = [(1, 1), (5, 1), (5, 5), (1, 5)]
        runs = contour_to_rle(square, 6, 6)

        with pytest.raises(ValueError, match="runs_to_spans"):
            Mask(square, rle=runs, width=6, height=6)

    @pytest.mark.parametrize("rle", [
        [5, 3, 6, 2],     # spans solapados
        [8, 2, 3, 1],     # starts decrecientes
        [30, 10],         # más allá del canvas 6×6
        [-1, 2],
    ])
    def test_invalid_span_layout_rejected(self, rle):
        with pytest.raises(ValueError):
            Mask([(0, 0), (2, 0), (2, 2)], rle=rle, width=6, height=6)

    def test_runs_must_cover_canvas(self):
        with pytest.raises(ValueError, match="canvas"):
            Mask([(0, 0), (2, 0), (2, 2)], runs=[3, 2, 5], width=6, height=6)

    def test_rle_and_runs_together_rejected(self):
        with pytest.raises(ValueError):
            Mask([(0, 0), (2, 0), (2, 2)], rle=[0, 1], runs=[0, 1, 35], width=6, height=6)

    def test_label_dtype_grows_with_mask_count(self):
        assert label_dtype(10) == np.uint16
        assert label_dtype(70000) == np.uint32
