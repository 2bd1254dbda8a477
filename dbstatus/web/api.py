from flask import Blueprint, jsonify

from dbstatus.services.monitor import get_monitor

api_bp = Blueprint("api", __name__)


@api_bp.route("/status")
def get_status():
    """Last known status plus connectivity, for clients that poll instead of subscribing."""
    return jsonify(get_monitor().snapshot())
