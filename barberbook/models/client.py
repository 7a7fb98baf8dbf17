# barberbook/models/client.py
from sqlalchemy import Column, String, Integer, Numeric, Text, DateTime, ForeignKey, Uuid
from sqlalchemy.sql import func
from decimal import Decimal
import uuid
from barberbook.models.base import Base


class Client(Base):
    """
    Client record owned by client management.
    The engine only writes the running visit totals on appointment completion.
    """
    __tablename__ = "clients"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Running totals
    total_visits = Column(Integer, default=0, nullable=False)
    total_spent = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    last_visit = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Client(id={self.id}, name={self.name})>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "total_visits": self.total_visits,
            "total_spent": float(self.total_spent or 0),
            "last_visit": self.last_visit.isoformat() if self.last_visit else None,
        }
