import unittest

from momentum.tokens import estimate_parts, estimate_tokens


class EstimateTokensTests(unittest.TestCase):
    def test_empty_is_zero(self) -> None:
        self.assertEqual(0, estimate_tokens(""))
        self.assertEqual(0, estimate_tokens(None))

    def test_rounds_up_per_four_characters(self) -> None:
        self.assertEqual(1, estimate_tokens("a"))
        self.assertEqual(1, estimate_tokens("abcd"))
        self.assertEqual(2, estimate_tokens("abcde"))
        self.assertEqual(250, estimate_tokens("x" * 1000))

    def test_monotonic_in_length(self) -> None:
        previous = 0
        for n in range(0, 200, 7):
            current = estimate_tokens("y" * n)
            self.assertGreaterEqual(current, previous)
            previous = current

    def test_parts_skip_none(self) -> None:
        self.assertEqual(estimate_tokens("abcdef"), estimate_parts("abc", None, "def"))
