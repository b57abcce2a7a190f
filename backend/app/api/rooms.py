from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.room_status import get_room_statuses
from ..utils.dependencies import get_current_user
from ..utils.rate_limit import rate_limited

router = APIRouter(prefix="/rooms", tags=["Rooms"])


@router.get("/status", dependencies=[Depends(rate_limited("general"))])
def room_status(
    company_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    statuses = get_room_statuses(db, company_id=company_id)
    if company_id is not None:
        return {"success": True, "room_status": statuses[0]}
    return {"success": True, "room_statuses": statuses}
