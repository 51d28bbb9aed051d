"""
Unit tests for the DebtPool and its portion conversions.
"""

import unittest

from nftvault import SECONDS_PER_YEAR, DebtPool, LedgerInvariantError, Rate, debt_for, portion_for

APR = Rate(10, 100)


class TestPortionConversions(unittest.TestCase):
    def test_bootstrap_portion_is_one_to_one(self):
        """Test that the first debt in an empty pool gets portions 1:1"""
        self.assertEqual(portion_for(500, 0, 0), 500)
        self.assertEqual(portion_for(123456789, 0, 0), 123456789)

    def test_portion_for_is_proportional(self):
        """Test portion_for against the floor formula"""
        self.assertEqual(portion_for(100, 1000, 1100), 1000 * 100 // 1100)
        self.assertEqual(portion_for(1100, 1000, 1100), 1000)

    def test_portion_for_rejects_debtless_pool_with_portions(self):
        with self.assertRaises(LedgerInvariantError):
            portion_for(100, 1000, 0)

    def test_debt_for(self):
        """Test debt_for against the floor formula"""
        self.assertEqual(debt_for(0, 0, 0), 0)
        self.assertEqual(debt_for(1100, 500, 1000), 550)
        self.assertEqual(debt_for(1000, 1, 3), 333)

    def test_round_trip_never_increases(self):
        """Test that converting debt to portions and back never gains value"""
        total_portion, total_debt = 1000, 1337
        for user_debt in (1, 7, 100, 1336, 1337):
            portion = portion_for(user_debt, total_portion, total_debt)
            self.assertLessEqual(debt_for(total_debt, portion, total_portion), user_debt)

        # Equality when the debt divides the portion basis evenly
        portion = portion_for(550, 1000, 1100)
        self.assertEqual(debt_for(1100, portion, 1000), 550)


class TestDebtPool(unittest.TestCase):
    def setUp(self):
        """Start a pool at t=1000"""
        self.pool = DebtPool(start_time=1000)

    def test_no_interest_without_debt(self):
        """Test that an empty pool accrues nothing but moves its timestamp"""
        self.assertEqual(self.pool.accrue(1000 + SECONDS_PER_YEAR, APR), 0)
        self.assertEqual(self.pool.last_accrued_at, 1000 + SECONDS_PER_YEAR)
        self.assertEqual(self.pool.total_debt_amount, 0)

    def test_accrue_formula(self):
        """Test interest = elapsed * total * apr // year, added to debt and fees"""
        self.pool.add_debt(1000 * 10**18)

        interest = self.pool.accrue(1000 + SECONDS_PER_YEAR, APR)

        self.assertEqual(interest, 100 * 10**18)
        self.assertEqual(self.pool.total_debt_amount, 1100 * 10**18)
        self.assertEqual(self.pool.total_fee_collected, 100 * 10**18)
        # Portions do not change with interest
        self.assertEqual(self.pool.total_debt_portion, 1000 * 10**18)

    def test_accrue_floors(self):
        """Test that one second of interest on a small debt floors"""
        self.pool.add_debt(500 * 10**18)
        expected = 1 * 500 * 10**18 * 10 // 100 // SECONDS_PER_YEAR
        self.assertEqual(self.pool.accrue(1001, APR), expected)
        self.assertGreater(expected, 0)

    def test_accrue_is_idempotent_per_timestamp(self):
        """Test that a second accrual at the same time adds nothing"""
        self.pool.add_debt(10**21)
        self.pool.accrue(5000, APR)
        total = self.pool.total_debt_amount

        self.assertEqual(self.pool.accrue(5000, APR), 0)
        self.assertEqual(self.pool.total_debt_amount, total)

    def test_accrue_backwards_raises(self):
        with self.assertRaises(LedgerInvariantError):
            self.pool.accrue(999, APR)

    def test_total_debt_with_interest_is_a_view(self):
        """Test that the pending-interest view leaves the pool untouched"""
        self.pool.add_debt(1000 * 10**18)
        self.assertEqual(self.pool.total_debt_with_interest(1000 + SECONDS_PER_YEAR, APR), 1100 * 10**18)
        self.assertEqual(self.pool.total_debt_amount, 1000 * 10**18)
        self.assertEqual(self.pool.last_accrued_at, 1000)

    def test_add_and_remove_debt(self):
        """Test portions issued after interest and their removal"""
        first = self.pool.add_debt(1000)
        self.assertEqual(first, 1000)
        self.pool.total_debt_amount = 2000  # pool doubled through interest

        second = self.pool.add_debt(1000)
        self.assertEqual(second, 500)
        self.assertEqual(self.pool.debt_of(second, 1000, APR), 1000)
        self.assertEqual(self.pool.debt_of(first, 1000, APR), 2000)

        self.pool.remove_debt(2000, first)
        self.assertEqual(self.pool.total_debt_amount, 1000)
        self.assertEqual(self.pool.total_debt_portion, 500)

    def test_remove_debt_saturates_at_zero(self):
        """Test that rounding dust cannot make the total negative"""
        self.pool.add_debt(100)
        self.pool.remove_debt(101, 100)
        self.assertEqual(self.pool.total_debt_amount, 0)
        self.assertEqual(self.pool.total_debt_portion, 0)

    def test_remaining_portions_keep_debt(self):
        """Test that dust removal never leaves portions backed by zero debt"""
        self.pool.add_debt(100)
        self.pool.remove_debt(100, 99)
        self.assertEqual(self.pool.total_debt_amount, 1)
        self.assertEqual(self.pool.total_debt_portion, 1)
        # The pool can still issue portions
        self.assertEqual(self.pool.add_debt(10), 10)

    def test_remove_too_many_portions_raises(self):
        self.pool.add_debt(100)
        with self.assertRaises(LedgerInvariantError):
            self.pool.remove_debt(10, 101)

    def test_take_fees(self):
        self.pool.add_fee(42)
        self.assertEqual(self.pool.take_fees(), 42)
        self.assertEqual(self.pool.total_fee_collected, 0)

    def test_snapshot_round_trip(self):
        """Test that reverting restores every counter"""
        self.pool.add_debt(100)
        snapshot = self.pool.get_snapshot()
        self.pool.add_debt(50)
        self.pool.accrue(2000, APR)

        self.pool.revert_to_snapshot(snapshot)

        self.assertEqual(self.pool.total_debt_amount, 100)
        self.assertEqual(self.pool.total_debt_portion, 100)
        self.assertEqual(self.pool.last_accrued_at, 1000)


if __name__ == '__main__':
    unittest.main()
