# barberbook/models/loyalty.py
"""
Loyalty program models: per-business settings, per-client ledger,
append-only history and the reward draw audit trail.
"""
from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, JSON, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid
from barberbook.models.base import Base


class LoyaltyAction(str, enum.Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    WHEEL_WON = "wheel_won"
    ADJUSTED = "adjusted"


class LoyaltySettings(Base):
    __tablename__ = "loyalty_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, unique=True)

    cuts_for_free = Column(Integer, nullable=False, default=10)
    program_active = Column(Boolean, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "business_id": str(self.business_id),
            "cuts_for_free": self.cuts_for_free,
            "program_active": self.program_active,
        }


class LoyaltyAccount(Base):
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        UniqueConstraint("business_id", "client_id", name="uq_loyalty_accounts_business_client"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=False)

    points = Column(Integer, nullable=False, default=0)
    free_haircuts = Column(Integer, nullable=False, default=0)

    # Cumulative counters for audit
    total_earned_points = Column(Integer, nullable=False, default=0)
    total_redeemed_haircuts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")

    def __repr__(self):
        return f"<LoyaltyAccount(client_id={self.client_id}, points={self.points}, free={self.free_haircuts})>"

    def to_dict(self):
        return {
            "client_id": str(self.client_id),
            "client_name": self.client.name if self.client else None,
            "points": self.points,
            "free_haircuts": self.free_haircuts,
            "total_earned_points": self.total_earned_points,
            "total_redeemed_haircuts": self.total_redeemed_haircuts,
        }


class LoyaltyHistory(Base):
    """Append-only audit trail of every ledger change"""
    __tablename__ = "loyalty_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("loyalty_accounts.id"), nullable=False)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    appointment_id = Column(Uuid(as_uuid=True), ForeignKey("appointments.id"), nullable=True)

    action_type = Column(String(20), nullable=False)
    points_change = Column(Integer, nullable=False, default=0)
    free_haircuts_change = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    def to_dict(self):
        return {
            "id": str(self.id),
            "client_id": str(self.client_id),
            "appointment_id": str(self.appointment_id) if self.appointment_id else None,
            "action_type": self.action_type,
            "points_change": self.points_change,
            "free_haircuts_change": self.free_haircuts_change,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class RewardDraw(Base):
    """One random reward draw and the eligible set it was drawn from"""
    __tablename__ = "reward_draws"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    winner_client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=False)

    eligible_clients = Column(JSON, default=list)  # [{"id": ..., "name": ...}]
    prize_name = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    drawn_at = Column(DateTime, nullable=False, index=True)

    winner = relationship("Client")

    def to_dict(self):
        return {
            "id": str(self.id),
            "winner_client_id": str(self.winner_client_id),
            "winner_name": self.winner.name if self.winner else None,
            "eligible_clients": self.eligible_clients or [],
            "prize_name": self.prize_name,
            "notes": self.notes,
            "drawn_at": self.drawn_at.isoformat(),
        }
