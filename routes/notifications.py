"""
Notification API polled by the dashboard layout.
"""
import logging
from flask import Blueprint, jsonify
from utils.route_guard import current_context, current_auth_state, evaluate_guard, ALLOWED, LOADING

logger = logging.getLogger(__name__)

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


def _store_or_error():
    decision = evaluate_guard(current_auth_state())
    if decision == LOADING:
        return None, (jsonify({'loading': True}), 202)
    if decision != ALLOWED:
        return None, (jsonify({'error': 'Not authenticated'}), 401)
    return current_context().notifications, None


@notifications_bp.route('', methods=['GET'])
def list_notifications():
    store, error = _store_or_error()
    if error:
        return error
    return jsonify({
        'notifications': [item.to_dict() for item in store.items()],
        'unread_count': store.unread_count,
        'chime': store.consume_chime()
    })


@notifications_bp.route('/<int:notification_id>/read', methods=['POST'])
def mark_read(notification_id):
    store, error = _store_or_error()
    if error:
        return error
    if not store.mark_read(notification_id):
        return jsonify({'error': 'Notification not found'}), 404
    return jsonify({'success': True, 'unread_count': store.unread_count})


@notifications_bp.route('/read-all', methods=['POST'])
def mark_all_read():
    store, error = _store_or_error()
    if error:
        return error
    store.mark_all_read()
    logger.debug("Marked all notifications read")
    return jsonify({'success': True, 'unread_count': store.unread_count})
