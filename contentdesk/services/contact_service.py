"""
Contact service: contact-form submissions and their follow-up workflow.

Submission persists the form, then the router schedules
``dispatch_notifications`` as a background task.  That task runs after the
response is sent, in its own session: it notifies the site inbox, records
``email_sent`` with a second independent write, and sends the submitter a
confirmation.  Each step is best-effort and only logs its failure.
"""
import logging
import math
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentdesk.config import settings
from contentdesk.errors import ServiceError
from contentdesk.models import Contact, ContactStatus
from contentdesk.notifier import Message, Notifier
from contentdesk.schemas import ContactCreate

logger = logging.getLogger(__name__)


def contact_to_dict(contact: Contact) -> dict:
    return {
        "id": contact.id,
        "full_name": contact.full_name,
        "email": contact.email,
        "phone_no": contact.phone_no,
        "country": contact.country,
        "requirements": contact.requirements,
        "status": contact.status,
        "email_sent": contact.email_sent,
        "email_sent_at": contact.email_sent_at.isoformat() if contact.email_sent_at else None,
        "created_at": contact.created_at.isoformat() if contact.created_at else None,
    }


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

async def submit_contact(
    db: AsyncSession,
    data: ContactCreate,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Contact:
    """
    Persist a submission.  A second submission from the same email inside
    ``CONTACT_THROTTLE_SECONDS`` is rejected with a 429.
    """
    since = datetime.now(timezone.utc) - timedelta(seconds=settings.CONTACT_THROTTLE_SECONDS)
    recent = await db.execute(
        select(Contact.id).where(Contact.email == data.email, Contact.created_at >= since).limit(1)
    )
    if recent.first() is not None:
        raise ServiceError.rate_limited(
            "You have already submitted a form recently. Please wait before submitting again."
        )

    contact = Contact(
        full_name=data.full_name,
        email=data.email,
        phone_no=data.phone_no,
        country=data.country,
        requirements=data.requirements,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500] or None,
    )
    db.add(contact)
    await db.flush()
    logger.info("Contact submitted", extra={"contact_id": contact.id})
    return contact


def _inbox_message(contact: dict) -> Message:
    body = "\n".join(
        [
            f"Name: {contact['full_name']}",
            f"Email: {contact['email']}",
            f"Phone: {contact['phone_no']}",
            f"Country: {contact['country']}",
            f"Submitted: {contact['created_at']}",
            "",
            contact["requirements"],
        ]
    )
    return Message(
        to=settings.NOTIFICATION_EMAIL,
        subject=f"New contact form submission from {contact['full_name']}",
        body=body,
    )


def _confirmation_message(contact: dict) -> Message:
    return Message(
        to=contact["email"],
        subject="Thank you for contacting us",
        body=(
            f"Hi {contact['full_name']},\n\n"
            "We have received your inquiry and will get back to you soon.\n"
        ),
    )


async def dispatch_notifications(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: Notifier,
    contact: dict,
) -> None:
    """Background task: notify the inbox, record delivery, confirm to the sender."""
    try:
        await notifier.send(_inbox_message(contact))
    except Exception:
        logger.warning("Inbox notification failed", extra={"contact_id": contact["id"]}, exc_info=True)
    else:
        try:
            async with session_factory() as session:
                await session.execute(
                    update(Contact)
                    .where(Contact.id == contact["id"])
                    .values(email_sent=True, email_sent_at=datetime.now(timezone.utc))
                )
                await session.commit()
        except Exception:
            logger.warning(
                "Recording email_sent failed", extra={"contact_id": contact["id"]}, exc_info=True
            )

    try:
        await notifier.send(_confirmation_message(contact))
    except Exception:
        logger.warning("Confirmation email failed", extra={"contact_id": contact["id"]}, exc_info=True)


# ---------------------------------------------------------------------------
# Back-office reads / status workflow
# ---------------------------------------------------------------------------

async def get_contacts(db: AsyncSession, page: int = 1, limit: int = 10) -> dict:
    """Paginated submissions, newest first, in the list envelope shape."""
    total: int = (await db.execute(select(func.count()).select_from(Contact))).scalar_one()
    result = await db.execute(
        select(Contact)
        .order_by(Contact.created_at.desc(), Contact.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pages = math.ceil(total / limit) if total > 0 else 0
    return {
        "success": True,
        "data": [contact_to_dict(c) for c in result.scalars().all()],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": pages,
            "hasNext": page < pages,
            "hasPrev": page > 1,
        },
        "filters": {},
    }


async def get_contact(db: AsyncSession, contact_id: int) -> dict:
    contact = await db.get(Contact, contact_id)
    if contact is None:
        raise ServiceError.not_found("contact")
    return contact_to_dict(contact)


async def update_contact_status(db: AsyncSession, contact_id: int, status: ContactStatus) -> dict:
    contact = await db.get(Contact, contact_id)
    if contact is None:
        raise ServiceError.not_found("contact")
    contact.status = ContactStatus(status).value
    await db.flush()
    logger.info("Contact status changed", extra={"contact_id": contact_id, "contact_status": contact.status})
    return contact_to_dict(contact)
