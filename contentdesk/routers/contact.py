from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentdesk.database import get_db, get_session_factory
from contentdesk.dependencies import Caller, PaginationParams, require_privileged
from contentdesk.notifier import Notifier, get_notifier
from contentdesk.schemas import ContactCreate, ContactStatusUpdate, ItemEnvelope, ListEnvelope
from contentdesk.services import contact_service

router = APIRouter(prefix="/api/v1/contact", tags=["contact"])


@router.post("", status_code=201, response_model=ItemEnvelope)
async def submit_contact(
    data: ContactCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    contact = await contact_service.submit_contact(
        db,
        data,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    payload = contact_service.contact_to_dict(contact)
    # The background task reads the row from another session.
    await db.commit()
    background_tasks.add_task(
        contact_service.dispatch_notifications, session_factory, notifier, payload
    )
    return {
        "success": True,
        "data": {"id": payload["id"], "created_at": payload["created_at"]},
        "message": "Thank you for your inquiry. We will get back to you soon.",
    }


@router.get("", response_model=ListEnvelope)
async def list_contacts(
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await contact_service.get_contacts(db, pagination.page, pagination.limit)


@router.get("/{contact_id}", response_model=ItemEnvelope)
async def get_contact(
    contact_id: int,
    caller: Caller = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await contact_service.get_contact(db, contact_id)}


@router.put("/{contact_id}/status", response_model=ItemEnvelope)
async def update_contact_status(
    contact_id: int,
    data: ContactStatusUpdate,
    caller: Caller = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    contact = await contact_service.update_contact_status(db, contact_id, data.status)
    return {"success": True, "data": contact, "message": "Status updated"}
