# ============================================================================
# FILE: barberbook/api/dependencies.py
# Request-scoped dependencies shared by the dashboard routers
# ============================================================================
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from uuid import UUID

from barberbook.config.database import get_db
from barberbook.models.business import Business


async def get_business_id(
        x_business_id: UUID = Header(..., alias="X-Business-ID", description="Owning business"),
        db: Session = Depends(get_db)
) -> UUID:
    """
    Resolve the business every dashboard call is scoped to.
    Authentication happens upstream; this only checks the business exists and is active.
    """
    business = db.query(Business).filter(
        Business.id == x_business_id,
        Business.is_active == True
    ).first()

    if not business:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Business {x_business_id} not found"
        )

    return business.id
