import unittest

from core.state import Container, Level, LiquidColor, LiquidLayer
from solver import similarity
from solver.similarity import (
    analyze_level_set_similarity,
    are_levels_similar,
    compare_structural_patterns,
    count_color_segments,
    find_most_similar_level,
    generate_detailed_signature,
    generate_normalized_signature,
    is_level_similar_to_any,
    normalize_colors,
    normalized_pattern,
    with_signature,
)

R = LiquidColor.RED
B = LiquidColor.BLUE
G = LiquidColor.GREEN
Y = LiquidColor.YELLOW
P = LiquidColor.PURPLE
O = LiquidColor.ORANGE


def box(cid, *layers, capacity=4):
    return Container(cid, capacity, tuple(LiquidLayer(c, v) for c, v in layers))


def level(*containers, level_id=1):
    colors = {layer.color for c in containers for layer in c.layers}
    return Level(level_id, 1, len(containers), len(colors), tuple(containers))


def recolor(lvl, mapping):
    containers = tuple(
        c.with_layers(LiquidLayer(mapping[layer.color], layer.volume) for layer in c.layers)
        for c in lvl.initial_containers
    )
    return Level(lvl.id, lvl.difficulty, lvl.container_count, lvl.color_count, containers)


def permute(lvl, order):
    containers = tuple(lvl.initial_containers[i].with_id(new) for new, i in enumerate(order))
    return Level(lvl.id, lvl.difficulty, lvl.container_count, lvl.color_count, containers)


def sample_level():
    return level(
        box(0, (R, 1), (B, 2), (G, 1)),
        box(1, (G, 2), (R, 2)),
        box(2, (B, 2), (G, 1), (R, 1)),
        box(3),
    )


class SimilarityTestCase(unittest.TestCase):
    def test_normalize_colors_letters_first_encounter(self):
        lvl = sample_level()
        self.assertEqual(["ABBC", "CCAA", "BBCA", "EMPTY"], normalize_colors(lvl.initial_containers))

    def test_signature_format(self):
        lvl = level(box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2)), box(2))
        self.assertEqual("containers:3|pattern:AABB,BBAA,EMPTY", generate_normalized_signature(lvl))

    def test_identical_structure_with_disjoint_colors_is_similar(self):
        first = sample_level()
        second = recolor(first, {R: Y, B: P, G: O})
        self.assertEqual(1.0, compare_structural_patterns(first, second))
        self.assertTrue(are_levels_similar(first, second))

    def test_signature_invariant_under_recoloring_and_permutation(self):
        base = sample_level()
        signature = generate_normalized_signature(base)
        self.assertEqual(signature, generate_normalized_signature(recolor(base, {R: G, G: B, B: R})))
        for order in ((3, 2, 1, 0), (1, 2, 0, 3), (2, 0, 3, 1)):
            self.assertEqual(signature, generate_normalized_signature(permute(base, order)))

    def test_signature_changes_with_structure(self):
        base = sample_level()
        other = level(
            box(0, (R, 2), (B, 2)),
            box(1, (G, 2), (R, 2)),
            box(2, (B, 2), (G, 2)),
            box(3),
        )
        self.assertNotEqual(generate_normalized_signature(base), generate_normalized_signature(other))

    def test_symmetric_levels_share_signature(self):
        a = level(box(0, (R, 1), (B, 3)), box(1, (B, 1), (R, 3)), box(2))
        b = level(box(0, (R, 3), (B, 1)), box(1, (B, 3), (R, 1)), box(2))
        self.assertNotEqual(generate_normalized_signature(a), generate_normalized_signature(b))
        swapped = permute(a, (1, 0, 2))
        self.assertEqual(generate_normalized_signature(a), generate_normalized_signature(swapped))

    def test_wide_color_symmetry_is_order_independent(self):
        colors = (R, B, G, Y, P, O, LiquidColor.PINK)
        ring = level(
            *(box(i, (colors[i], 2), (colors[(i + 1) % 7], 2)) for i in range(7)),
            box(7),
        )
        reversed_ring = permute(ring, tuple(reversed(range(8))))
        shifted = recolor(ring, {c: colors[(i + 3) % 7] for i, c in enumerate(colors)})
        signature = generate_normalized_signature(ring)
        self.assertEqual(signature, generate_normalized_signature(reversed_ring))
        self.assertEqual(signature, generate_normalized_signature(permute(shifted, (4, 2, 7, 0, 6, 1, 5, 3))))
        self.assertEqual(1.0, compare_structural_patterns(ring, reversed_ring))

        # two disjoint 3-rings plus a pair are not one 7-ring
        split = level(
            *(box(i, (colors[i], 2), (colors[(i + 1) % 3], 2)) for i in range(3)),
            *(box(3 + i, (colors[3 + i], 2), (colors[3 + (i + 1) % 3], 2)) for i in range(3)),
            box(6, (colors[6], 4)),
            box(7),
        )
        self.assertNotEqual(signature, generate_normalized_signature(split))

    def test_fully_symmetric_level_canonicalizes(self):
        colors = (R, B, G, Y, P, O, LiquidColor.PINK, LiquidColor.CYAN)
        lvl = level(*(box(i, (c, 2), (colors[(i + 4) % 8], 2)) for i, c in enumerate(colors)), box(8))
        self.assertEqual(
            generate_normalized_signature(lvl),
            generate_normalized_signature(permute(lvl, (8, 7, 6, 5, 4, 3, 2, 1, 0))),
        )

    def test_normalized_pattern_returns_fresh_list(self):
        lvl = sample_level()
        first = normalized_pattern(lvl)
        first.append("junk")
        self.assertEqual(normalized_pattern(lvl), sorted(normalized_pattern(permute(lvl, (3, 2, 1, 0)))))
        self.assertNotIn("junk", normalized_pattern(lvl))

    def test_compare_reuses_cached_patterns(self):
        a = sample_level()
        b = permute(a, (2, 0, 3, 1))
        compare_structural_patterns(a, b)
        hits = similarity._canonical_patterns.cache_info().hits
        self.assertEqual(1.0, compare_structural_patterns(a, b))
        self.assertEqual(hits + 2, similarity._canonical_patterns.cache_info().hits)

    def test_different_container_counts_score_zero(self):
        a = level(box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2)), box(2))
        b = level(box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2)), box(2), box(3))
        self.assertEqual(0.0, compare_structural_patterns(a, b))
        self.assertFalse(are_levels_similar(a, b))

    def test_partial_match_below_threshold(self):
        a = level(box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2)), box(2))
        b = level(box(0, (R, 1), (B, 3)), box(1, (B, 1), (R, 3)), box(2))
        self.assertAlmostEqual(1.0 / 3.0, compare_structural_patterns(a, b))
        self.assertFalse(is_level_similar_to_any(b, [a]))
        self.assertTrue(is_level_similar_to_any(a, [b, recolor(a, {R: G, B: Y})]))

    def test_most_similar_and_set_analysis(self):
        a = level(box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2)), box(2))
        b = level(box(0, (R, 1), (B, 3)), box(1, (B, 1), (R, 3)), box(2))
        twin = recolor(a, {R: G, B: Y})
        best, score = find_most_similar_level(a, [b, twin])
        self.assertIs(twin, best)
        self.assertEqual(1.0, score)

        stats = analyze_level_set_similarity([a, b, twin])
        self.assertEqual(3, stats["comparisons"])
        self.assertEqual(1, stats["similar_pairs"])
        self.assertEqual(1.0, stats["max_similarity"])

    def test_with_signature_and_segments(self):
        lvl = with_signature(sample_level())
        self.assertTrue(lvl.signature.startswith("containers:4|pattern:"))
        self.assertEqual(3, count_color_segments("ABBC"))
        self.assertEqual(0, count_color_segments("EMPTY"))

    def test_detailed_signature(self):
        lvl = level(box(0, (R, 2), (B, 2)), box(1, (B, 2), (R, 2)), box(2))
        detail = generate_detailed_signature(lvl)
        self.assertEqual(["AABB", "BBAA", "EMPTY"], detail["normalized_pattern"])
        self.assertEqual(generate_normalized_signature(lvl), detail["signature"])
        self.assertAlmostEqual(1.0 / 3.0, detail["complexity"]["empty_ratio"])
        self.assertAlmostEqual(4.0 / 3.0, detail["complexity"]["avg_segments"])


if __name__ == "__main__":
    unittest.main()
