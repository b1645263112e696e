import itertools
import math
import threading
import unittest
from unittest.mock import patch

from solver import generator as generator_module
from solver import search as search_module
from solver.generator import GenerationCancelled, GenerationConfig, GenerationError, LevelGenerator
from solver.similarity import generate_normalized_signature

FAST_CONFIG = dict(max_solvability_expansions=5_000, max_solvability_states=50_000, max_solvability_seconds=10.0)


def make_generator(seed=7, **overrides):
    params = dict(FAST_CONFIG)
    params.update(overrides)
    return LevelGenerator(GenerationConfig(seed=seed, **params))


class LevelGeneratorTestCase(unittest.TestCase):
    def test_volume_conservation_and_structure(self):
        gen = make_generator()
        for difficulty, containers, colors in ((1, 4, 2), (3, 5, 3)):
            level = gen.generate_level(1, difficulty, containers, colors, 4)
            volumes = level.color_volumes()
            self.assertEqual(colors, len(volumes))
            self.assertTrue(all(v == 4 for v in volumes.values()))
            self.assertEqual(level.container_count, len(level.initial_containers))
            self.assertEqual(list(range(level.container_count)), [c.id for c in level.initial_containers])
            self.assertGreaterEqual(level.empty_container_count, 1)
            self.assertFalse(gen.has_completed_containers(level))
            self.assertEqual(generate_normalized_signature(level), level.signature)
            self.assertEqual(level.signature, gen.level_signature(level))

    def test_generated_levels_validate(self):
        gen = make_generator(seed=11)
        for level_id in range(1, 6):
            level = gen.generate_level(level_id, 2, 4, 2, 4)
            self.assertTrue(gen.validate_level(level))

    def test_same_seed_reproduces_level(self):
        first = make_generator(seed=1234).generate_level(3, 2, 4, 2, 4)
        second = make_generator(seed=1234).generate_level(3, 2, 4, 2, 4)
        self.assertEqual(first, second)
        self.assertEqual(first.to_dict(), second.to_dict())

    def test_adjacent_layers_are_merged(self):
        level = make_generator(seed=5).generate_level(1, 6, 5, 3, 4)
        for container in level.initial_containers:
            colors = [layer.color for layer in container.layers]
            self.assertTrue(all(a != b for a, b in zip(colors, colors[1:])))

    def test_seeded_generation_ignores_wall_clock(self):
        expected = make_generator(seed=7).generate_level(1, 1, 4, 2, 4)
        slow_clock = itertools.count(0.0, 60.0)
        with patch.object(search_module.time, "perf_counter", side_effect=slow_clock):
            level = make_generator(seed=7).generate_level(1, 1, 4, 2, 4)
        self.assertEqual(expected, level)

    def test_time_budget_applies_only_unseeded(self):
        self.assertEqual(2.0, GenerationConfig().search_limits().max_seconds)
        self.assertEqual(math.inf, GenerationConfig(seed=1).search_limits().max_seconds)
        self.assertEqual(1_000, GenerationConfig(seed=1).search_limits().max_expansions)

    def test_tags_follow_level_and_difficulty(self):
        level = make_generator().generate_level(2, 1, 4, 2, 4)
        self.assertEqual(("tutorial", "easy"), level.tags)

    def test_invalid_parameters_raise(self):
        gen = make_generator()
        with self.assertRaises(ValueError):
            gen.generate_level(1, 1, 3, 3, 4)
        with self.assertRaises(ValueError):
            gen.generate_level(1, 1, 12, 11, 4)
        with self.assertRaises(ValueError):
            gen.generate_level(1, 1, 4, 0, 4)
        with self.assertRaises(ValueError):
            gen.generate_level(1, 1, 4, 2, 0)
        with self.assertRaises(ValueError):
            make_generator(min_empty_slots=5).generate_level(1, 1, 3, 2, 4)

    def test_exhausted_attempts_raise_generation_error(self):
        gen = make_generator(max_generation_attempts=3)
        with patch.object(generator_module, "validate_generated_level", return_value=False) as validate:
            with self.assertRaises(GenerationError):
                gen.generate_level(1, 1, 4, 2, 4)
        self.assertLessEqual(validate.call_count, 3)

    def test_cancelled_generation(self):
        event = threading.Event()
        event.set()
        with self.assertRaises(GenerationCancelled):
            make_generator().generate_level(1, 1, 4, 2, 4, cancel_event=event)

    def test_unique_level_falls_back_after_attempt_cap(self):
        gen = make_generator()
        sample = gen.generate_level(1, 1, 4, 2, 4)
        with patch.object(gen, "generate_level", return_value=sample) as generate:
            with patch.object(generator_module, "is_level_similar_to_any", return_value=True):
                level = gen.generate_unique_level(1, 1, 4, 2, 4, existing_levels=[sample])
        self.assertIs(sample, level)
        self.assertEqual(generator_module.UNIQUE_LEVEL_ATTEMPTS + 1, generate.call_count)

    def test_unique_level_returns_first_distinct_candidate(self):
        gen = make_generator(seed=3)
        level = gen.generate_unique_level(1, 1, 4, 2, 4, existing_levels=[])
        self.assertEqual(1, level.id)

    def test_level_series_uses_progression(self):
        levels = make_generator(seed=21).generate_level_series(1, 3, start_difficulty=1)
        self.assertEqual([1, 2, 3], [level.id for level in levels])
        self.assertTrue(all(level.difficulty == 1 for level in levels))
        self.assertTrue(all(level.initial_containers[0].capacity == 4 for level in levels))


if __name__ == "__main__":
    unittest.main()
