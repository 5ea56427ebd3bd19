"""
Authentication routes for Flask application.
"""
import logging
import traceback
from flask import Blueprint, render_template, request, redirect, url_for, flash, session
from flask_login import login_user, logout_user, login_required, current_user
from models.user import DashboardUser
from services.session_registry import SessionRegistry
from utils.password_policy import generate_secure_password, validate_password_strength
from utils.roles import USER_ROLES, RECEPTION, home_endpoint_for
from utils.route_guard import SESSION_KEY, TOKENS_KEY, current_context, get_registry, protected, store_tokens

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _safe_next(target):
    if target and target.startswith('/') and not target.startswith('//'):
        return target
    return None


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    logger.info("=== LOGIN ROUTE CALLED ===")

    if current_user.is_authenticated:
        logger.info("User already authenticated, redirecting to index")
        return redirect(url_for('main.index'))

    if request.method == 'POST':
        email = (request.form.get('email') or '').strip()
        password = request.form.get('password')

        logger.info(f"Login attempt for: {email}")

        if not email or not password:
            logger.warning("Missing email or password")
            flash('Please provide both email and password', 'error')
            return render_template('login.html'), 400

        try:
            key = session.get(SESSION_KEY) or SessionRegistry.new_key()
            session[SESSION_KEY] = key
            context = get_registry().get_or_create(key)

            result = context.auth_session.sign_in(email, password)

            if result['error']:
                logger.error(f"Authentication failed: {result['error']}")
                flash(f"Authentication failed: {result['error']}", 'error')
                return render_template('login.html'), 401

            store_tokens(context.auth_provider.get_session())

            profile = result['profile']
            login_user(DashboardUser(result['user'], profile))
            logger.info(f"✓ Logged in {email} as {profile.role if profile else 'unknown'}")

            flash(f'Welcome {profile.full_name if profile and profile.full_name else email}!', 'success')
            target = _safe_next(request.args.get('next'))
            return redirect(target or url_for(home_endpoint_for(profile.role if profile else None)))
        except Exception as e:
            logger.error(f"Authentication exception: {e}")
            logger.error(f"Login route traceback: {traceback.format_exc()}")
            flash(f'Connection error: {str(e)}', 'error')
            return render_template('login.html'), 500

    return render_template('login.html')


@auth_bp.route('/logout')
@login_required
def logout():
    logger.info("Logout route called")

    key = session.get(SESSION_KEY)
    context = current_context()
    if context is not None:
        context.auth_session.sign_out()
    if key:
        get_registry().discard(key)

    session.pop(SESSION_KEY, None)
    session.pop(TOKENS_KEY, None)

    logout_user()
    flash('You have been logged out.', 'info')
    return redirect(url_for('auth.login'))


@auth_bp.route('/signup', methods=['GET', 'POST'])
@protected(required_role='admin')
def signup():
    """Create a dashboard account (admins only)"""
    if request.method == 'POST':
        form = {
            'email': (request.form.get('email') or '').strip(),
            'full_name': (request.form.get('full_name') or '').strip(),
            'role': request.form.get('role') or RECEPTION,
            'tenant_id': request.form.get('tenant_id') or None
        }
        password = request.form.get('password') or ''
        generated = False
        if request.form.get('generate_password') == 'on' or not password:
            password = generate_secure_password()
            generated = True

        if not form['email'] or form['role'] not in USER_ROLES:
            flash('A valid email and role are required', 'error')
            return render_template('signup.html', form=form, roles=USER_ROLES), 400

        strength = validate_password_strength(password)
        if not strength['is_valid']:
            flash('Password too weak: ' + '; '.join(strength['feedback']), 'error')
            return render_template('signup.html', form=form, roles=USER_ROLES), 400

        context = current_context()
        result = context.auth_session.sign_up(
            form['email'], password,
            full_name=form['full_name'], role=form['role'], tenant_id=form['tenant_id']
        )
        if result['error']:
            flash(f"Failed to create account: {result['error']}", 'error')
            return render_template('signup.html', form=form, roles=USER_ROLES), 400

        if result.get('warning'):
            flash(result['warning'], 'warning')
        if generated:
            flash(f"Account created. Temporary password: {password}", 'success')
        else:
            flash('Account created successfully!', 'success')
        return redirect(url_for('main.users_page'))

    return render_template('signup.html', form={}, roles=USER_ROLES)


@auth_bp.route('/password', methods=['GET', 'POST'])
@protected()
def change_password():
    if request.method == 'POST':
        new_password = request.form.get('new_password') or ''
        confirm = request.form.get('confirm_password') or ''

        if new_password != confirm:
            flash('Passwords do not match', 'error')
            return render_template('password.html'), 400

        strength = validate_password_strength(new_password)
        if not strength['is_valid']:
            flash('Password too weak: ' + '; '.join(strength['feedback']), 'error')
            return render_template('password.html'), 400

        error = current_context().auth_session.update_password(new_password)
        if error:
            flash(f'Password update failed: {error}', 'error')
            return render_template('password.html'), 400

        flash('Password updated', 'success')
        return redirect(url_for('main.index'))

    return render_template('password.html')
