import unittest
from unittest.mock import patch

from solver import level_miner
from solver.generator import GenerationConfig, GenerationError
from solver.level_miner import MinedLevel, _quantile, bucket_levels, mine_levels, mine_one

CONFIG = GenerationConfig(max_solvability_expansions=5_000, max_solvability_states=50_000, max_solvability_seconds=10.0)


def row(seed, status="solved", complexity=10.0):
    return MinedLevel(
        seed=seed,
        status=status,
        level=None,
        signature=f"sig{seed}",
        complexity=complexity,
        solution_len=3,
        reason=None,
        wall_ms=1.0,
    )


class LevelMinerTestCase(unittest.TestCase):
    def test_quantile_interpolates(self):
        values = [10.0, 20.0, 30.0, 40.0]
        self.assertAlmostEqual(20.0, _quantile(values, 1.0 / 3.0), places=6)
        self.assertAlmostEqual(30.0, _quantile(values, 2.0 / 3.0), places=6)
        with self.assertRaises(ValueError):
            _quantile([], 0.5)

    def test_bucket_levels_by_complexity(self):
        rows = [
            row(1, complexity=10.0),
            row(2, complexity=20.0),
            row(3, complexity=30.0),
            row(4, complexity=40.0),
            row(5, status="unknown", complexity=5.0),
            row(6, status="failed", complexity=None),
        ]
        buckets = bucket_levels(rows)
        self.assertEqual([1, 2], [x.seed for x in buckets["Easy"]])
        self.assertEqual([3], [x.seed for x in buckets["Medium"]])
        self.assertEqual([4], [x.seed for x in buckets["Hard"]])
        self.assertEqual({"Easy": [], "Medium": [], "Hard": []}, bucket_levels([row(7, status="unknown")]))

    def test_mine_one_solves_generated_level(self):
        mined = mine_one(17, 1, 1, CONFIG)
        self.assertEqual("solved", mined.status)
        self.assertGreater(mined.solution_len, 0)
        self.assertTrue(mined.signature.startswith("containers:"))
        self.assertEqual(1, mined.level["id"])
        self.assertEqual(mined.to_dict()["level"], mined.level)

    def test_mine_one_reports_generation_failure(self):
        with patch.object(level_miner.LevelGenerator, "generate_level", side_effect=GenerationError("exhausted")):
            mined = mine_one(3, 1, 1, CONFIG)
        self.assertEqual("failed", mined.status)
        self.assertEqual("exhausted", mined.reason)
        self.assertIsNone(mined.level)

    def test_same_seed_mines_same_level(self):
        first, second = mine_levels([5, 5], 1, 1, CONFIG)
        self.assertEqual(first.level, second.level)
        self.assertEqual(first.signature, second.signature)

    def test_reverse_mining_solves_scrambled_level(self):
        mined = mine_one(17, 1, 1, CONFIG, reverse=True)
        self.assertEqual("solved", mined.status)
        first, second = mine_levels([9, 9], 1, 2, CONFIG, reverse=True)
        self.assertEqual(first.level, second.level)


if __name__ == "__main__":
    unittest.main()
