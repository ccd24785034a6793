"""
Concurrency tests for the progression engine.

Purpose
-------
Race the same operation against itself and check that the atomic
conditional updates hold: completion rewards are paid once, balances never
go negative, stock is never oversold and a day is counted once.

Every scenario runs its writers with asyncio.gather(return_exceptions=True)
so losers surface as domain exceptions rather than failing the test.
"""

import asyncio

import pytest

from progression.database.models.enums import TransactionReason
from progression.modules.shared.exceptions import (
    InsufficientBalanceError,
    InvalidStateError,
)

pytestmark = [pytest.mark.integration, pytest.mark.concurrency]

WRITERS = 5


def _split(results):
    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    return successes, failures


class TestConcurrentWrites:
    """Race identical writes and check the invariants."""

    async def test_concurrent_progress_completes_once(self, challenges, ledger, make_challenge):
        challenge = await make_challenge(required_count=3, point_reward=100)
        await challenges.enroll("user-a", challenge["id"])

        results = await asyncio.gather(
            *[challenges.update_progress("user-a", challenge["id"]) for _ in range(WRITERS)],
            return_exceptions=True,
        )

        successes, failures = _split(results)
        assert sum(1 for r in successes if r["completed_now"]) == 1
        assert all(isinstance(exc, InvalidStateError) for exc in failures)

        history = await ledger.get_transaction_history("user-a")
        assert [t["reason"] for t in history] == ["CHALLENGE_COMPLETE"]
        assert (await ledger.get_summary("user-a"))["available_points"] == 100

    async def test_concurrent_spends_never_overdraw(self, ledger):
        await ledger.award_points("user-a", 100, TransactionReason.ADMIN_ADJUSTMENT)

        results = await asyncio.gather(
            *[
                ledger.spend_points("user-a", 30, TransactionReason.REWARD_REDEMPTION)
                for _ in range(WRITERS)
            ],
            return_exceptions=True,
        )

        successes, failures = _split(results)
        assert len(successes) == 3
        assert all(isinstance(exc, InsufficientBalanceError) for exc in failures)

        report = await ledger.verify_ledger("user-a")
        assert report["available_points"] == 10
        assert report["consistent"] is True

    async def test_concurrent_redeems_respect_stock(
        self, ledger, redemptions, reward_catalog, make_reward
    ):
        reward = await make_reward(point_cost=100, stock_quantity=2)
        users = [f"user-{n}" for n in range(WRITERS)]
        for user in users:
            await ledger.award_points(user, 100, TransactionReason.ADMIN_ADJUSTMENT)

        results = await asyncio.gather(
            *[redemptions.redeem(user, reward["id"]) for user in users],
            return_exceptions=True,
        )

        successes, failures = _split(results)
        assert len(successes) == 2
        assert all(isinstance(exc, InvalidStateError) for exc in failures)
        assert (await reward_catalog.get_reward_by_id(reward["id"]))["stock_quantity"] == 0

        balances = [
            (await ledger.get_summary(user))["available_points"] for user in users
        ]
        assert sorted(balances) == [0, 0, 100, 100, 100]

    async def test_concurrent_check_ins_count_one_day(self, streaks, ledger):
        results = await asyncio.gather(
            *[streaks.check_in("user-a") for _ in range(WRITERS)],
            return_exceptions=True,
        )

        successes, failures = _split(results)
        assert failures == []
        assert sum(1 for r in successes if not r["already_checked_in"]) == 1

        summary = await ledger.get_summary("user-a")
        assert summary["available_points"] == 10
        assert summary["current_streak"] == 1

    async def test_concurrent_awards_create_one_account(self, ledger):
        results = await asyncio.gather(
            *[
                ledger.award_points("user-new", 10, TransactionReason.ADMIN_ADJUSTMENT)
                for _ in range(WRITERS)
            ],
            return_exceptions=True,
        )

        successes, failures = _split(results)
        assert failures == []
        assert (await ledger.get_summary("user-new"))["available_points"] == 10 * WRITERS
        assert len(await ledger.get_leaderboard()) == 1
