"""Staff authentication: bcrypt password hashes and signed bearer tokens."""

from typing import Optional

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError

from cheesehouse import db
from cheesehouse.models import Role, StaffUser

TOKEN_SALT = 'cheesehouse-staff-auth'
PASSWORD_MIN_LENGTH = 6
PERMISSION_MANAGE_USERS = 'can_manage_users'


class AuthError(Exception):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(user: StaffUser) -> str:
    return _serializer().dumps({
        'user_id': user.id,
        'role': user.role.name if user.role else None,
    })


def user_from_token(token: str) -> Optional[StaffUser]:
    max_age = int(current_app.config.get('AUTH_TOKEN_MAX_AGE_SEC', 24 * 3600))
    try:
        claims = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info('[auth] expired token')
        return None
    except BadSignature:
        current_app.logger.info('[auth] invalid token signature')
        return None
    user_id = claims.get('user_id') if isinstance(claims, dict) else None
    if user_id is None:
        return None
    user = db.session.get(StaffUser, user_id)
    if user is None or not user.active:
        return None
    return user


def authenticate(email: str, password: str) -> StaffUser:
    email = (email or '').strip().lower()
    current_app.logger.info(f"[auth-login] attempt for {email}")
    user = StaffUser.query.filter_by(email=email).first()
    if user is None or not user.check_password(password or ''):
        current_app.logger.info(f"[auth-login] invalid credentials for {email}")
        raise AuthError('Invalid credentials', 401)
    if not user.active:
        current_app.logger.info(f"[auth-login] inactive account {email}")
        raise AuthError('Account disabled, contact an administrator', 403)
    current_app.logger.info(f"[auth-login] success for {email}")
    return user


def _check_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise AuthError(f'Password must have at least {PASSWORD_MIN_LENGTH} characters')


def _commit() -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def create_staff(creator: StaffUser, name: str, email: str, password: str, role_name: str = Role.EMPLOYEE) -> StaffUser:
    if not creator.has_permission(PERMISSION_MANAGE_USERS):
        raise AuthError('Not allowed to create users', 403)
    email = (email or '').strip().lower()
    if not name or not email:
        raise AuthError('Name and email are required')
    if StaffUser.query.filter_by(email=email).first():
        raise AuthError('Email already in use')
    _check_password_strength(password)
    role = Role.query.filter_by(name=role_name).first()
    if role is None:
        raise AuthError(f'Unknown role {role_name}')

    user = StaffUser(name=name, email=email, role=role, active=True)
    user.set_password(password)
    db.session.add(user)
    _commit()
    current_app.logger.info(f"[staff-created] {user.email} by {creator.email}")
    return user


def change_password(user: StaffUser, current_password: str, new_password: str) -> None:
    if not user.check_password(current_password or ''):
        raise AuthError('Current password is incorrect')
    _check_password_strength(new_password)
    user.set_password(new_password)
    db.session.add(user)
    _commit()
    current_app.logger.info(f"[auth-password] changed for {user.email}")


def set_active(user_id: int, active: bool, requested_by: StaffUser) -> StaffUser:
    if not requested_by.is_admin:
        raise AuthError('Not allowed to modify users', 403)
    if user_id == requested_by.id:
        raise AuthError('You cannot deactivate your own account')
    user = db.session.get(StaffUser, user_id)
    if user is None:
        raise AuthError('User not found', 404)
    user.active = bool(active)
    db.session.add(user)
    _commit()
    current_app.logger.info(
        f"[staff-{'activated' if user.active else 'deactivated'}] {user.email} by {requested_by.email}"
    )
    return user


def user_counts() -> dict:
    total = StaffUser.query.count()
    active = StaffUser.query.filter_by(active=True).count()
    return {'total_users': total, 'active_users': active, 'inactive_users': total - active}
