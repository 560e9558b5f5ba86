from flask import Blueprint

from agrirent.routes.api.v1.bookings import api_booking_bp
from agrirent.routes.api.v1.equipment import api_equipment_bp
from agrirent.routes.api.v1.notifications import api_notification_bp

api_v1_bp = Blueprint("api_v1", __name__)
api_v1_bp.register_blueprint(api_equipment_bp, url_prefix="/equipment")
api_v1_bp.register_blueprint(api_booking_bp, url_prefix="/bookings")
api_v1_bp.register_blueprint(api_notification_bp, url_prefix="/notifications")
