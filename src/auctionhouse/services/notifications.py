from sqlalchemy import select, update, func

from ..errors import NotFound
from ..models import Notification, utcnow


def notify(session, user_id, type_, title, message=None, **payload):
    """Agrega la notificación a la transacción en curso; no hace commit."""
    n = Notification(user_id=user_id, type=type_, title=title, message=message, payload=payload or None)
    session.add(n)
    return n


def list_for_user(session, user_id, unread_only=False, limit=50):
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    items = session.execute(
        stmt.order_by(Notification.is_read.asc(), Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    ).scalars().all()
    unread = session.scalar(
        select(func.count(Notification.id))
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return items, unread


def _owned(session, user_id, notification_id):
    n = session.execute(
        select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    ).scalar_one_or_none()
    if n is None:
        raise NotFound("Notificación no encontrada.")
    return n


def mark_read(session, user_id, notification_id, now=None):
    n = _owned(session, user_id, notification_id)
    if not n.is_read:
        n.is_read = True
        n.read_at = now or utcnow()
        session.commit()
    return n


def mark_all_read(session, user_id, now=None):
    result = session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount


def delete(session, user_id, notification_id):
    n = _owned(session, user_id, notification_id)
    session.delete(n)
    session.commit()
