# barberbook/services/loyalty/reward_draw_service.py
"""Weekly reward draw among recent visitors"""
import random
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from barberbook.config.settings import get_settings
from barberbook.core.exceptions import NoEligibleClients
from barberbook.models.client import Client
from barberbook.models.loyalty import RewardDraw
from barberbook.services.loyalty.loyalty_service import LoyaltyService
from barberbook.utils import time_window

logger = logging.getLogger(__name__)

PRIZE_NAME = "1 free haircut"


class RewardDrawService:
    """Picks one recent visitor at random and grants them a free haircut"""

    @staticmethod
    def eligible_clients(
            db: Session,
            business_id: UUID,
            now: Optional[datetime] = None,
            window_days: Optional[int] = None
    ) -> List[Client]:
        """Clients whose last visit falls in the trailing window (inclusive)."""
        now = now or time_window.business_now()
        window_days = window_days or get_settings().REWARD_DRAW_WINDOW_DAYS

        return db.query(Client).filter(
            Client.business_id == business_id,
            Client.last_visit.isnot(None),
            Client.last_visit >= now - timedelta(days=window_days),
            Client.last_visit <= now,
        ).order_by(Client.name.asc()).all()

    @staticmethod
    def draw(
            eligible_ids: Sequence[UUID],
            last_winner_id: Optional[UUID],
            rng: random.Random,
            max_attempts: Optional[int] = None
    ) -> UUID:
        """
        Uniform pick that tries to avoid an immediate repeat winner.

        With more than one candidate the pick is redrawn while it equals
        ``last_winner_id``, for at most ``max_attempts`` picks in total; the
        final pick is accepted even if it is still the previous winner.
        """
        if not eligible_ids:
            raise NoEligibleClients("No clients visited in the draw window")

        max_attempts = max_attempts or get_settings().REWARD_DRAW_MAX_ATTEMPTS
        candidates = list(eligible_ids)

        winner = rng.choice(candidates)
        attempts = 1
        while len(candidates) > 1 and winner == last_winner_id and attempts < max_attempts:
            winner = rng.choice(candidates)
            attempts += 1

        return winner

    @staticmethod
    def last_winner_id(db: Session, business_id: UUID) -> Optional[UUID]:
        latest = db.query(RewardDraw).filter(
            RewardDraw.business_id == business_id
        ).order_by(RewardDraw.drawn_at.desc()).first()
        return latest.winner_client_id if latest else None

    @staticmethod
    def run_draw(
            db: Session,
            business_id: UUID,
            rng: Optional[random.Random] = None,
            now: Optional[datetime] = None
    ) -> RewardDraw:
        """Draw a winner, grant the prize and store the audit row."""
        now = now or time_window.business_now()
        rng = rng or random.Random()

        eligible = RewardDrawService.eligible_clients(db, business_id, now=now)
        winner_id = RewardDrawService.draw(
            [client.id for client in eligible],
            RewardDrawService.last_winner_id(db, business_id),
            rng,
        )

        notes = f"Draw: {PRIZE_NAME} among {len(eligible)} participants"
        LoyaltyService.grant_free_haircut(db, business_id, winner_id, notes=notes, commit=False)

        record = RewardDraw(
            business_id=business_id,
            winner_client_id=winner_id,
            eligible_clients=[{"id": str(client.id), "name": client.name} for client in eligible],
            prize_name=PRIZE_NAME,
            notes=notes,
            drawn_at=now,
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        logger.info(f"Reward draw for business {business_id}: winner {winner_id} of {len(eligible)}")
        return record

    @staticmethod
    def recent_draws(db: Session, business_id: UUID, limit: int = 10) -> List[RewardDraw]:
        return db.query(RewardDraw).filter(
            RewardDraw.business_id == business_id
        ).order_by(RewardDraw.drawn_at.desc()).limit(limit).all()
