"""
tests/test_payoff_service.py
Tests for pari-mutuel payout arithmetic.
"""

import pytest

from services.payoff_service import calculate_losing_pool, calculate_payout_rate, calculate_prize

ETHER = 10 ** 18


class TestPayoutRate:
    def test_three_gambler_pool(self):
        """1.75 pool, 1.00 losing, 5% commission -> floor(1.75 * 95 / 1.00) = 166."""
        total = ETHER + ETHER // 2 + ETHER // 4
        losing = calculate_losing_pool(total, ETHER // 2 + ETHER // 4)
        assert losing == ETHER
        assert calculate_payout_rate(total, losing, 5) == 166

    def test_zero_commission(self):
        assert calculate_payout_rate(300, 100, 0) == 300

    def test_full_commission(self):
        assert calculate_payout_rate(300, 100, 100) == 0

    def test_truncates(self):
        # 7 * 95 / 3 = 221.67
        assert calculate_payout_rate(7, 3, 5) == 221

    def test_rejects_empty_losing_pool(self):
        with pytest.raises(ValueError):
            calculate_payout_rate(100, 0, 5)


class TestPrize:
    def test_half_ether_at_166(self):
        assert calculate_prize(166, ETHER // 2) == 830_000_000_000_000_000

    def test_small_stake_truncates_to_zero(self):
        assert calculate_prize(166, 0) == 0
        assert calculate_prize(99, 1) == 0
