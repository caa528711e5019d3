"""Odds and pool total tests."""

from overunder.betting.pool import PoolTotals, compute_odds


class TestComputeOdds:
    def test_empty_pool_is_even(self):
        assert compute_odds(0, 0) == (0.5, 0.5)

    def test_shares_follow_stake_totals(self):
        over, under = compute_odds(300, 100)
        assert over == 0.75
        assert under == 0.25

    def test_one_sided_pool(self):
        assert compute_odds(0, 200) == (0.0, 1.0)

    def test_shares_sum_to_one(self):
        over, under = compute_odds(7, 13)
        assert abs(over + under - 1.0) < 1e-12


class TestPoolTotals:
    def test_pot_and_side_totals(self):
        totals = PoolTotals(total_over=300, total_under=200, participants=3)
        assert totals.total_pot == 500
        assert totals.side_total("over") == 300
        assert totals.side_total("under") == 200

    def test_defaults_are_empty(self):
        assert PoolTotals().total_pot == 0
