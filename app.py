"""
Visitor dashboard Flask application.
"""
import logging
from flask import Flask
from flask_login import LoginManager
from config import settings
from models.user import DashboardUser
from routes.auth import auth_bp
from routes.main import main_bp
from routes.notifications import notifications_bp
from services.realtime_service import RealtimeService
from services.session_registry import SessionRegistry, build_supabase_context
from utils.permissions import role_flags
from utils.route_guard import current_context

logger = logging.getLogger(__name__)


def configure_logging(level=settings.LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.DEBUG),
        format='%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(test_config=None):
    """Application factory.

    ``test_config`` may carry ``REALTIME_SERVICE`` and ``CONTEXT_FACTORY`` to
    swap in other backends.
    """
    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY=settings.SECRET_KEY,
        REALTIME_ENABLED=settings.REALTIME_ENABLED,
        NOTIFICATION_CAPACITY=settings.NOTIFICATION_CAPACITY,
        PROFILE_FETCH_TIMEOUT=settings.PROFILE_FETCH_TIMEOUT,
        REALTIME_ACCESS_TOKEN=settings.REALTIME_ACCESS_TOKEN,
        SESSION_IDLE_TIMEOUT=settings.SESSION_IDLE_TIMEOUT,
    )
    if test_config:
        app.config.update(test_config)

    realtime = app.config.get('REALTIME_SERVICE')
    if realtime is None:
        realtime = RealtimeService(access_token=app.config['REALTIME_ACCESS_TOKEN'])
        if app.config['REALTIME_ENABLED']:
            realtime.start()

    factory = app.config.get('CONTEXT_FACTORY')
    if factory is None:
        def factory():
            return build_supabase_context(
                realtime,
                capacity=app.config['NOTIFICATION_CAPACITY'],
                profile_timeout=app.config['PROFILE_FETCH_TIMEOUT']
            )

    app.extensions['realtime_service'] = realtime
    app.extensions['dashboard_registry'] = SessionRegistry(factory, idle_timeout=app.config['SESSION_IDLE_TIMEOUT'])

    # Flask-Login setup
    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.login_view = 'auth.login'

    @login_manager.user_loader
    def load_user(user_id):
        context = current_context()
        if context is None:
            return None
        state = context.auth_session.snapshot()
        if state.user is not None and str(state.user.id) == user_id:
            return DashboardUser(state.user, state.profile)
        logger.debug(f"No dashboard session for user {user_id}")
        return None

    @app.context_processor
    def inject_auth():
        context = current_context()
        if context is None:
            return {'auth_profile': None, 'role_flags': role_flags(None), 'unread_count': 0}
        profile = context.auth_session.profile
        return {
            'auth_profile': profile,
            'role_flags': role_flags(profile),
            'unread_count': context.notifications.unread_count
        }

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(notifications_bp)

    logger.info("=== VISITOR DASHBOARD APP CREATED ===")
    return app
