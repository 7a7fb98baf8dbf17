# barberbook/services/loyalty/loyalty_service.py
"""Loyalty ledger: point accrual, free-haircut redemption and audit history"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from barberbook.config.settings import get_settings as get_app_settings
from barberbook.core.exceptions import NoRewardAvailable, NotFound, SchedulingError
from barberbook.models.client import Client
from barberbook.models.loyalty import LoyaltyAccount, LoyaltyAction, LoyaltyHistory, LoyaltySettings
from barberbook.utils import time_window

logger = logging.getLogger(__name__)

# Clients this close to the threshold count as "near a reward"
NEAR_REWARD_MARGIN = 2


class LoyaltyService:
    """Per-client point counter and free-haircut counter"""

    # ------------------------------------------------------------------
    # Program settings
    # ------------------------------------------------------------------

    @staticmethod
    def get_loyalty_settings(db: Session, business_id: UUID) -> LoyaltySettings:
        """Fetch the program settings, creating the default row on first use."""
        program = db.query(LoyaltySettings).filter(
            LoyaltySettings.business_id == business_id
        ).first()

        if not program:
            program = LoyaltySettings(
                business_id=business_id,
                cuts_for_free=get_app_settings().DEFAULT_CUTS_FOR_FREE,
                program_active=True,
            )
            db.add(program)
            db.commit()
            db.refresh(program)
            logger.info(f"Initialized loyalty settings for business {business_id}")

        return program

    @staticmethod
    def update_loyalty_settings(
            db: Session,
            business_id: UUID,
            cuts_for_free: Optional[int] = None,
            program_active: Optional[bool] = None
    ) -> LoyaltySettings:
        """Change the threshold; only future accruals are affected."""
        if cuts_for_free is not None and cuts_for_free < 1:
            raise SchedulingError("cuts_for_free must be at least 1")

        program = LoyaltyService.get_loyalty_settings(db, business_id)
        if cuts_for_free is not None:
            program.cuts_for_free = cuts_for_free
        if program_active is not None:
            program.program_active = program_active

        db.commit()
        db.refresh(program)
        logger.info(f"Updated loyalty settings for business {business_id}: cuts_for_free={program.cuts_for_free}")
        return program

    # ------------------------------------------------------------------
    # Ledger operations
    # ------------------------------------------------------------------

    @staticmethod
    def get_account(db: Session, business_id: UUID, client_id: UUID) -> Optional[LoyaltyAccount]:
        return db.query(LoyaltyAccount).filter(
            LoyaltyAccount.business_id == business_id,
            LoyaltyAccount.client_id == client_id
        ).first()

    @staticmethod
    def _get_or_create_account(db: Session, business_id: UUID, client_id: UUID) -> LoyaltyAccount:
        """Row-locked account for the client; created empty when missing."""
        account = db.query(LoyaltyAccount).filter(
            LoyaltyAccount.business_id == business_id,
            LoyaltyAccount.client_id == client_id
        ).with_for_update().first()

        if account:
            return account

        client = db.query(Client).filter(
            Client.id == client_id,
            Client.business_id == business_id
        ).first()
        if not client:
            raise NotFound(f"Client {client_id} not found")

        account = LoyaltyAccount(
            business_id=business_id,
            client_id=client_id,
            points=0,
            free_haircuts=0,
            total_earned_points=0,
            total_redeemed_haircuts=0,
        )
        db.add(account)
        db.flush()
        return account

    @staticmethod
    def _record(
            db: Session,
            account: LoyaltyAccount,
            action: LoyaltyAction,
            points_change: int = 0,
            free_haircuts_change: int = 0,
            appointment_id: Optional[UUID] = None,
            notes: Optional[str] = None
    ) -> LoyaltyHistory:
        entry = LoyaltyHistory(
            business_id=account.business_id,
            account_id=account.id,
            client_id=account.client_id,
            appointment_id=appointment_id,
            action_type=action.value,
            points_change=points_change,
            free_haircuts_change=free_haircuts_change,
            notes=notes,
        )
        db.add(entry)
        return entry

    @staticmethod
    def accrue(
            db: Session,
            business_id: UUID,
            client_id: UUID,
            appointment_id: Optional[UUID] = None
    ) -> Optional[LoyaltyAccount]:
        """
        Credit one point for a completed visit.

        Reaching ``cuts_for_free`` converts the points into one free haircut
        and zeroes the counter in the same write. Returns None when the
        program is switched off.
        """
        program = LoyaltyService.get_loyalty_settings(db, business_id)
        if not program.program_active:
            logger.info(f"Loyalty program inactive for business {business_id}, skipping accrual")
            return None

        account = LoyaltyService._get_or_create_account(db, business_id, client_id)

        account.points += 1
        account.total_earned_points += 1
        won_free_haircut = account.points >= program.cuts_for_free
        if won_free_haircut:
            account.free_haircuts += 1
            account.points = 0

        LoyaltyService._record(
            db, account, LoyaltyAction.EARNED,
            points_change=1,
            free_haircuts_change=1 if won_free_haircut else 0,
            appointment_id=appointment_id,
            notes="Earned 1 free haircut" if won_free_haircut else "Added 1 point",
        )
        db.commit()
        db.refresh(account)

        if won_free_haircut:
            logger.info(f"Client {client_id} earned a free haircut")
        return account

    @staticmethod
    def redeem(
            db: Session,
            business_id: UUID,
            client_id: UUID,
            appointment_id: Optional[UUID] = None
    ) -> LoyaltyAccount:
        """
        Use one free haircut.

        Redemption also clears the points collected toward the next reward.
        """
        account = db.query(LoyaltyAccount).filter(
            LoyaltyAccount.business_id == business_id,
            LoyaltyAccount.client_id == client_id
        ).with_for_update().first()

        if not account or account.free_haircuts <= 0:
            raise NoRewardAvailable("Client has no free haircuts available")

        cleared_points = account.points
        account.free_haircuts -= 1
        account.points = 0
        account.total_redeemed_haircuts += 1

        LoyaltyService._record(
            db, account, LoyaltyAction.REDEEMED,
            points_change=-cleared_points,
            free_haircuts_change=-1,
            appointment_id=appointment_id,
            notes="Redeemed 1 free haircut",
        )
        db.commit()
        db.refresh(account)
        logger.info(f"Client {client_id} redeemed a free haircut")
        return account

    @staticmethod
    def grant_free_haircut(
            db: Session,
            business_id: UUID,
            client_id: UUID,
            notes: Optional[str] = None,
            commit: bool = True
    ) -> LoyaltyAccount:
        """Add a free haircut without touching the point counter."""
        account = LoyaltyService._get_or_create_account(db, business_id, client_id)
        account.free_haircuts += 1

        LoyaltyService._record(
            db, account, LoyaltyAction.WHEEL_WON,
            free_haircuts_change=1,
            notes=notes,
        )
        if commit:
            db.commit()
            db.refresh(account)
        else:
            db.flush()
        return account

    @staticmethod
    def adjust_points(
            db: Session,
            business_id: UUID,
            client_id: UUID,
            points_change: int,
            reason: str
    ) -> LoyaltyAccount:
        """
        Manual correction of the point counter.

        The balance never drops below zero, and whole thresholds are converted
        into free haircuts.
        """
        program = LoyaltyService.get_loyalty_settings(db, business_id)
        account = LoyaltyService._get_or_create_account(db, business_id, client_id)

        new_points = max(0, account.points + points_change)
        applied = new_points - account.points
        converted = new_points // program.cuts_for_free
        account.points = new_points % program.cuts_for_free
        account.free_haircuts += converted
        account.total_earned_points += max(0, applied)

        # History keeps the change actually applied after clamping
        LoyaltyService._record(
            db, account, LoyaltyAction.ADJUSTED,
            points_change=applied,
            free_haircuts_change=converted,
            notes=reason,
        )
        db.commit()
        db.refresh(account)
        logger.info(f"Adjusted loyalty points for client {client_id} by {applied} (requested {points_change}): {reason}")
        return account

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def list_accounts(db: Session, business_id: UUID) -> List[LoyaltyAccount]:
        return db.query(LoyaltyAccount).filter(
            LoyaltyAccount.business_id == business_id
        ).order_by(LoyaltyAccount.points.desc()).all()

    @staticmethod
    def get_history(
            db: Session,
            business_id: UUID,
            client_id: Optional[UUID] = None,
            limit: int = 100
    ) -> List[LoyaltyHistory]:
        query = db.query(LoyaltyHistory).filter(LoyaltyHistory.business_id == business_id)
        if client_id:
            query = query.filter(LoyaltyHistory.client_id == client_id)
        return query.order_by(LoyaltyHistory.created_at.desc()).limit(limit).all()

    @staticmethod
    def get_stats(db: Session, business_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Program-wide counters for the loyalty dashboard."""
        now = now or time_window.business_now()
        program = LoyaltyService.get_loyalty_settings(db, business_id)
        accounts = LoyaltyService.list_accounts(db, business_id)
        clients = db.query(Client).filter(Client.business_id == business_id).all()

        week_ago = now - timedelta(days=get_app_settings().REWARD_DRAW_WINDOW_DAYS)

        return {
            "business_id": str(business_id),
            "cuts_for_free": program.cuts_for_free,
            "total_points": sum(a.points for a in accounts),
            "total_free_haircuts": sum(a.free_haircuts for a in accounts),
            "clients_near_reward": sum(
                1 for a in accounts
                if program.cuts_for_free - NEAR_REWARD_MARGIN <= a.points < program.cuts_for_free
            ),
            "active_clients": sum(1 for c in clients if (c.total_visits or 0) > 0),
            "weekly_clients": sum(1 for c in clients if c.last_visit and c.last_visit >= week_ago),
        }
