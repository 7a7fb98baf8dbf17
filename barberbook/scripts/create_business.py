#!/usr/bin/env python3
"""
Script to create a barbershop with its default service menu
Usage: python -m barberbook.scripts.create_business "Barbearia Central"
"""
import sys
from decimal import Decimal
from sqlalchemy.orm import Session

from barberbook.config.database import SessionLocal, create_tables
from barberbook.models.business import Business
from barberbook.models.loyalty import LoyaltySettings
from barberbook.models.service import Service
from barberbook.config.settings import get_settings

DEFAULT_SERVICES = [
    {"name": "Corte Simples", "price": Decimal("25.00"), "duration": 30},
    {"name": "Corte + Barba", "price": Decimal("35.00"), "duration": 45},
    {"name": "Barba", "price": Decimal("15.00"), "duration": 20},
    {"name": "Corte Especial", "price": Decimal("40.00"), "duration": 60},
]


def create_business(name: str) -> str:
    """Create a business with the default services and loyalty program"""
    create_tables()
    db: Session = SessionLocal()

    try:
        business = Business(name=name, is_active=True)
        db.add(business)
        db.flush()  # Get the ID without committing

        for service_data in DEFAULT_SERVICES:
            db.add(Service(business_id=business.id, is_active=True, **service_data))

        db.add(LoyaltySettings(
            business_id=business.id,
            cuts_for_free=get_settings().DEFAULT_CUTS_FOR_FREE,
            program_active=True,
        ))
        db.commit()

        print(f"\n✅ Created business: {business.name}")
        print(f"   Business ID: {business.id}")
        print(f"\nServices:")
        for service_data in DEFAULT_SERVICES:
            print(f"  - {service_data['name']}: R$ {service_data['price']} ({service_data['duration']} min)")
        print(f"\nSend 'X-Business-ID: {business.id}' with every dashboard request.")
        print()

        return str(business.id)

    except Exception as e:
        db.rollback()
        print(f"\n❌ Error creating business: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    create_business(sys.argv[1] if len(sys.argv) > 1 else "Barbearia Demo")
