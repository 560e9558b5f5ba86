from blinker import Namespace
from flask import current_app

from agrirent.extensions import db
from agrirent.models import Notification

_signals = Namespace()

# Sent after a tracking update commits; transports subscribe to relay it live.
tracking_updated = _signals.signal("tracking-updated")


class NotificationService:
    @staticmethod
    def push(user_id, title, message, booking_id=None):
        notification = Notification(user_id=user_id, booking_id=booking_id, title=title, message=message)
        db.session.add(notification)
        db.session.flush()
        return notification

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    @staticmethod
    def latest_for_user(user_id, limit=10):
        return (
            Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def mark_all_read(user_id):
        Notification.query.filter_by(user_id=user_id, is_read=False).update({"is_read": True})
        db.session.commit()

    @staticmethod
    def broadcast_tracking(booking):
        """Best-effort relay of the latest position; failures never undo the update."""
        payload = {
            "booking_id": booking.id,
            "booking_number": booking.booking_number,
            "coordinates": [
                float(booking.current_longitude) if booking.current_longitude is not None else None,
                float(booking.current_latitude) if booking.current_latitude is not None else None,
            ],
            "last_updated": booking.location_updated_at.isoformat() if booking.location_updated_at else None,
            "estimated_arrival": booking.estimated_arrival.isoformat() if booking.estimated_arrival else None,
        }
        try:
            tracking_updated.send(current_app._get_current_object(), payload=payload)
        except Exception:
            current_app.logger.warning("Tracking relay failed for booking %s", booking.id, exc_info=True)
        return payload
