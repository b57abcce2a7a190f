import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..services import scheduling
from ..utils.rate_limit import rate_limited
from ..utils.roles import admin_only

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


class RepairQueuesIn(BaseModel):
    company_id: int | None = Field(default=None, ge=1)


@router.get("/queues/{company_id}/integrity", dependencies=[Depends(rate_limited("general"))])
def queue_integrity(
    company_id: int,
    db: Session = Depends(get_db),
    user=Depends(admin_only),
):
    report = scheduling.validate_queue_integrity(db, company_id=company_id)
    return {"success": True, **report}


@router.post("/queues/repair", dependencies=[Depends(rate_limited("general"))])
def repair_queues(
    body: RepairQueuesIn | None = None,
    db: Session = Depends(get_db),
    user=Depends(admin_only),
):
    result = scheduling.repair_queue_positions(db, company_id=body.company_id if body else None)
    logger.info("Admin %s repaired queues: %s", user.get("sub"), result)
    return {"success": True, **result}
