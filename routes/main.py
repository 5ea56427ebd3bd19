"""
Main routes for Flask application.
"""
from flask import Blueprint, current_app, jsonify, redirect, render_template, url_for
from utils.roles import home_endpoint_for
from utils.route_guard import current_auth_state, protected

main_bp = Blueprint('main', __name__)


def _dashboard(title, section):
    state = current_auth_state()
    return render_template('dashboard.html', title=title, section=section, profile=state.profile)


@main_bp.route('/')
@protected()
def index():
    state = current_auth_state()
    return redirect(url_for(home_endpoint_for(state.profile.role if state.profile else None)))


@main_bp.route('/status')
def status():
    """Check realtime connection status"""
    realtime = current_app.extensions.get('realtime_service')
    if realtime is None:
        return jsonify({'running': False, 'connected': False})
    return jsonify(realtime.get_state())


# Role home pages
@main_bp.route('/admin')
@protected(required_role='admin')
def admin_dashboard():
    return _dashboard('Admin Dashboard', 'admin')


@main_bp.route('/reception')
@protected(feature='reception')
def reception_dashboard():
    return _dashboard('Reception', 'reception')


@main_bp.route('/host')
@protected(required_role='host')
def host_dashboard():
    return _dashboard('Host Dashboard', 'host')


@main_bp.route('/security')
@protected(required_role='security')
def security_dashboard():
    return _dashboard('Security Dashboard', 'security')


# Feature pages
@main_bp.route('/badges')
@protected(feature='badges')
def badges_page():
    return _dashboard('Badge Management', 'badges')


@main_bp.route('/evacuation')
@protected(feature='evacuation')
def evacuation_page():
    return _dashboard('Evacuation', 'evacuation')


@main_bp.route('/approvals')
@protected(feature='approvals')
def approvals_page():
    return _dashboard('Approvals', 'approvals')


@main_bp.route('/blacklist')
@protected(feature='blacklist')
def blacklist_page():
    return _dashboard('Blacklist', 'blacklist')


@main_bp.route('/settings')
@protected(required_role='admin', feature='settings')
def settings_page():
    return _dashboard('Settings', 'settings')


@main_bp.route('/users')
@protected(required_role='admin', feature='users')
def users_page():
    return _dashboard('User Management', 'users')


@main_bp.route('/host/analytics')
@protected(feature='host-analytics')
def host_analytics_page():
    return _dashboard('Host Analytics', 'host-analytics')


@main_bp.route('/host/badges')
@protected(feature='host-badges')
def host_badges_page():
    return _dashboard('Host Badges', 'host-badges')
