from flask import Blueprint, jsonify
from flask_login import login_required

from agrirent.decorators import current_actor
from agrirent.services import NotificationService
from agrirent.utils import iso

api_notification_bp = Blueprint("api_notification", __name__)


@api_notification_bp.get("/me")
@login_required
def my_notifications():
    actor = current_actor()
    items = NotificationService.latest_for_user(actor.id, limit=20)
    return jsonify(
        {
            "unread": NotificationService.unread_count(actor.id),
            "items": [
                {
                    "id": n.id,
                    "booking_id": n.booking_id,
                    "title": n.title,
                    "message": n.message,
                    "is_read": n.is_read,
                    "created_at": iso(n.created_at),
                }
                for n in items
            ],
        }
    )


@api_notification_bp.post("/me/read")
@login_required
def mark_all_read():
    NotificationService.mark_all_read(current_actor().id)
    return jsonify({"ok": True})
