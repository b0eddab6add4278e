"""
Authentication routes and utilities

Login, sign-up and logout only publish auth events; the per-client session
machine reacts to them.
"""
import uuid
from datetime import datetime, timezone
from flask import Blueprint, current_app, flash, jsonify, redirect, render_template, request, session, url_for
from flask_login import current_user, login_required, login_user, logout_user
from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError

from alia import db, login_manager
from alia.domain import Identity, Plan
from alia.errors import ProfileUnavailableError
from alia.models import Profile, User
from alia.services.profile_service import fetch_profile_with_retry, get_profile
from alia.session import auth_state_changed

auth_bp = Blueprint('auth', __name__)

TOKEN_SALT = 'alia-api-token'


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID"""
    return db.session.get(User, int(user_id))


def _token_serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_api_token(user):
    return _token_serializer().dumps(user.id)


@login_manager.request_loader
def load_user_from_request(req):
    """Accept `Authorization: Bearer <token>` for the JSON endpoints"""
    header = req.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return None
    token = header[len('Bearer '):].strip()
    try:
        user_id = _token_serializer().loads(token, max_age=current_app.config['API_TOKEN_MAX_AGE'])
    except BadSignature:
        return None
    return db.session.get(User, int(user_id))


def client_id():
    """Opaque per-browser id used as the auth event sender"""
    cid = session.get('client_id')
    if not cid:
        cid = uuid.uuid4().hex
        session['client_id'] = cid
    return cid


def publish_auth_state(user=None, profile=None):
    """Send the auth event for this client: (identity, profile) or (None, None)"""
    if user is not None and profile is not None:
        identity = Identity(user_id=user.id, email=user.email)
        auth_state_changed.send(client_id(), identity=identity, profile=profile)
    else:
        auth_state_changed.send(client_id(), identity=None, profile=None)


def publish_current_user():
    """Initial auth event for a client the registry has not seen yet"""
    if current_user.is_authenticated:
        publish_auth_state(current_user, get_profile(current_user.id))
    else:
        publish_auth_state()


def _complete_login(user, remember=False):
    login_user(user, remember=remember)
    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()

    profile = fetch_profile_with_retry(user.id, current_app.config['PROFILE_RETRY_DELAY'])
    publish_auth_state(user, profile)


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    """User registration"""
    if current_user.is_authenticated:
        return redirect(url_for('main.index'))

    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')
        full_name = request.form.get('full_name', '').strip()

        # Validation
        if not email or not password:
            flash('E-mail e senha são obrigatórios.', 'error')
            return render_template('auth/register.html'), 400

        if len(password) < 6:
            flash('A senha deve ter pelo menos 6 caracteres.', 'error')
            return render_template('auth/register.html'), 400

        if User.query.filter_by(email=email).first():
            flash('E-mail já cadastrado.', 'error')
            return render_template('auth/register.html'), 400

        user = User(email=email)
        user.set_password(password)
        user.profile = Profile(full_name=full_name, plan=Plan.FREE)

        try:
            db.session.add(user)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.exception('Registration failed for %s', email)
            flash(f'Falha no cadastro: {type(e).__name__}', 'error')
            return render_template('auth/register.html'), 500

        try:
            _complete_login(user)
        except ProfileUnavailableError as e:
            logout_user()
            flash(e.message, 'error')
            return render_template('auth/login.html'), 503

        flash('Cadastro realizado! Bem-vindo à ALIA.', 'success')
        return redirect(url_for('main.index'))

    return render_template('auth/register.html')


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    """User login"""
    if current_user.is_authenticated:
        return redirect(url_for('main.index'))

    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')
        remember = bool(request.form.get('remember'))

        user = User.query.filter_by(email=email).first()

        if user and user.check_password(password):
            try:
                _complete_login(user, remember=remember)
            except ProfileUnavailableError as e:
                logout_user()
                flash(e.message, 'error')
                return render_template('auth/login.html'), 503

            next_page = request.args.get('next')
            if next_page and next_page.startswith('/'):
                return redirect(next_page)
            return redirect(url_for('main.index'))

        flash('E-mail ou senha inválidos.', 'error')

    return render_template('auth/login.html')


@auth_bp.route('/logout')
@login_required
def logout():
    """User logout"""
    publish_auth_state()
    current_app.extensions['alia_sessions'].discard(client_id())
    logout_user()
    flash('Você saiu da sua conta.', 'info')
    return redirect(url_for('auth.login'))


@auth_bp.route('/auth/token')
@login_required
def api_token():
    """Bearer token for the JSON endpoints"""
    return jsonify({'token': issue_api_token(current_user)})
