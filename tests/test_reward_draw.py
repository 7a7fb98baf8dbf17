import random
import uuid
from datetime import timedelta

import pytest

from barberbook.core.exceptions import NoEligibleClients
from barberbook.models import LoyaltyHistory, RewardDraw
from barberbook.services.loyalty.loyalty_service import LoyaltyService
from barberbook.services.loyalty.reward_draw_service import PRIZE_NAME, RewardDrawService


class ScriptedRng:
    """Returns the scripted picks in order, repeating the last one"""

    def __init__(self, *picks):
        self.picks = list(picks)
        self.calls = 0

    def choice(self, candidates):
        pick = self.picks[min(self.calls, len(self.picks) - 1)]
        self.calls += 1
        assert pick in candidates
        return pick


@pytest.mark.unit
class TestDraw:

    def test_empty_set(self):
        with pytest.raises(NoEligibleClients):
            RewardDrawService.draw([], None, random.Random(1))

    def test_single_candidate_may_repeat(self):
        only = uuid.uuid4()
        assert RewardDrawService.draw([only], only, random.Random(1)) == only

    def test_redraws_away_from_last_winner(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        rng = ScriptedRng(a, a, b)

        assert RewardDrawService.draw([a, b], a, rng) == b
        assert rng.calls == 3

    def test_gives_up_after_max_attempts(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        rng = ScriptedRng(a)

        assert RewardDrawService.draw([a, b], a, rng, max_attempts=5) == a
        assert rng.calls == 5

    def test_seeded_rng_is_reproducible(self):
        ids = [uuid.uuid4() for _ in range(6)]

        first = RewardDrawService.draw(ids, None, random.Random(42))
        second = RewardDrawService.draw(ids, None, random.Random(42))

        assert first == second


@pytest.mark.integration
class TestRunDraw:

    @pytest.fixture
    def recent_visitors(self, db_session, clients, now):
        clients["alice"].last_visit = now - timedelta(days=1)
        clients["bruno"].last_visit = now - timedelta(days=6)
        clients["carla"].last_visit = now - timedelta(days=8)
        db_session.commit()
        return clients

    def test_eligibility_window(self, db_session, business, recent_visitors, now):
        eligible = RewardDrawService.eligible_clients(db_session, business.id, now=now)

        assert [c.name for c in eligible] == ["Alice", "Bruno"]

    def test_no_recent_visits(self, db_session, business, clients, now):
        with pytest.raises(NoEligibleClients):
            RewardDrawService.run_draw(db_session, business.id, rng=random.Random(7), now=now)

    def test_winner_gets_free_haircut(self, db_session, business, recent_visitors, now):
        alice = recent_visitors["alice"]

        draw = RewardDrawService.run_draw(db_session, business.id, rng=ScriptedRng(alice.id), now=now)

        assert draw.winner_client_id == alice.id
        assert draw.prize_name == PRIZE_NAME
        assert len(draw.eligible_clients) == 2
        account = LoyaltyService.get_account(db_session, business.id, alice.id)
        assert account.free_haircuts == 1
        assert db_session.query(LoyaltyHistory).filter(LoyaltyHistory.action_type == "wheel_won").count() == 1

    def test_next_draw_avoids_previous_winner(self, db_session, business, recent_visitors, now):
        alice, bruno = recent_visitors["alice"], recent_visitors["bruno"]
        RewardDrawService.run_draw(db_session, business.id, rng=ScriptedRng(alice.id), now=now)

        draw = RewardDrawService.run_draw(
            db_session, business.id, rng=ScriptedRng(alice.id, bruno.id), now=now + timedelta(minutes=1),
        )

        assert draw.winner_client_id == bruno.id
        assert db_session.query(RewardDraw).count() == 2
        assert [d.winner_client_id for d in RewardDrawService.recent_draws(db_session, business.id)] == [
            bruno.id, alice.id,
        ]
