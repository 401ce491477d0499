from cheesehouse import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json


def utcnow():
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class Role(db.Model):
    __tablename__ = 'role'
    ADMIN = 'admin'
    EMPLOYEE = 'employee'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    permissions = db.Column(db.Text, nullable=False, default='{}')  # JSON object of flags
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def permission_map(self):
        try:
            loaded = json.loads(self.permissions or '{}')
        except ValueError:
            return {}
        return loaded if isinstance(loaded, dict) else {}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'permissions': self.permission_map(),
        }


class StaffUser(UserMixin, db.Model):
    __tablename__ = 'staff_user'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey('role.id'), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    role = db.relationship('Role')

    @property
    def is_active(self):
        return bool(self.active)

    @property
    def is_admin(self):
        return self.role is not None and self.role.name == Role.ADMIN

    def has_permission(self, permission):
        if self.is_admin:
            return True
        if self.role is None:
            return False
        return bool(self.role.permission_map().get(permission))

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role_id': self.role_id,
            'role': self.role.name if self.role else None,
            'active': self.active,
            'created_at': _iso(self.created_at),
        }


class Customer(db.Model):
    __tablename__ = 'customer'
    STATUS_ACTIVE = 'active'
    STATUS_BLOCKED = 'blocked'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), unique=True, nullable=False, index=True)  # normalized, e.g. +5491112345678
    registered_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_played_at = db.Column(db.DateTime, nullable=True)
    total_games = db.Column(db.Integer, nullable=False, default=0)
    games_won = db.Column(db.Integer, nullable=False, default=0)
    games_lost = db.Column(db.Integer, nullable=False, default=0)
    # Each staff approval lets the customer play one game past the threshold
    approved_extra_games = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    vouchers = db.relationship('Voucher', back_populates='customer', order_by='Voucher.issued_at')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
            'registered_at': _iso(self.registered_at),
            'last_played_at': _iso(self.last_played_at),
            'total_games': self.total_games,
            'games_won': self.games_won,
            'games_lost': self.games_lost,
            'approved_extra_games': self.approved_extra_games,
            'status': self.status,
        }


class Voucher(db.Model):
    __tablename__ = 'voucher'
    KIND_GAME_WON = 'game_won'
    KIND_GAME_LOST = 'game_lost'
    KIND_PROMOTION = 'promotion'
    GAME_KINDS = (KIND_GAME_WON, KIND_GAME_LOST)

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    kind = db.Column(db.String(20), nullable=False)
    discount = db.Column(db.Integer, nullable=False)  # percentage 1-100
    won = db.Column(db.Boolean, nullable=True)  # NULL for promotions
    issued_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime, nullable=True)
    redeemed_by_id = db.Column(db.Integer, db.ForeignKey('staff_user.id'), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    customer = db.relationship('Customer', back_populates='vouchers')
    redeemed_by = db.relationship('StaffUser')

    def is_expired(self, now=None):
        return self.expires_at < (now or utcnow())

    @property
    def expiry_display(self):
        return self.expires_at.strftime('%d/%m/%Y')

    def to_dict(self, include_customer=False):
        data = {
            'id': self.id,
            'code': self.code,
            'customer_id': self.customer_id,
            'kind': self.kind,
            'discount': self.discount,
            'won': self.won,
            'issued_at': _iso(self.issued_at),
            'expires_at': _iso(self.expires_at),
            'used': self.used,
            'used_at': _iso(self.used_at),
            'redeemed_by_id': self.redeemed_by_id,
            'notes': self.notes,
            'expired': self.is_expired(),
        }
        if include_customer and self.customer is not None:
            data['customer'] = {
                'id': self.customer.id,
                'name': self.customer.full_name,
                'phone': self.customer.phone,
            }
        return data


class Campaign(db.Model):
    __tablename__ = 'campaign'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    discount = db.Column(db.Integer, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    message = db.Column(db.Text, nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('staff_user.id'), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship('StaffUser')
    sends = db.relationship('CampaignSend', back_populates='campaign', lazy='dynamic')

    def to_dict(self, include_stats=False):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'discount': self.discount,
            'expires_at': _iso(self.expires_at),
            'message': self.message,
            'created_by_id': self.created_by_id,
            'active': self.active,
            'created_at': _iso(self.created_at),
        }
        if include_stats:
            data['sends'] = {
                'total': self.sends.count(),
                'sent': self.sends.filter_by(status=CampaignSend.STATUS_SENT).count(),
                'delivered': self.sends.filter_by(status=CampaignSend.STATUS_DELIVERED).count(),
                'failed': self.sends.filter_by(status=CampaignSend.STATUS_FAILED).count(),
            }
        return data


class CampaignSend(db.Model):
    __tablename__ = 'campaign_send'
    STATUS_SENT = 'sent'
    STATUS_DELIVERED = 'delivered'
    STATUS_FAILED = 'failed'

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaign.id'), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    voucher_id = db.Column(db.Integer, db.ForeignKey('voucher.id'), nullable=True)  # NULL until a voucher exists
    voucher_code = db.Column(db.String(20), nullable=True)
    sent_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    status = db.Column(db.String(20), nullable=False, default=STATUS_SENT)
    error_message = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=1)

    campaign = db.relationship('Campaign', back_populates='sends')
    customer = db.relationship('Customer')
    voucher = db.relationship('Voucher')

    def to_dict(self):
        return {
            'id': self.id,
            'campaign_id': self.campaign_id,
            'customer_id': self.customer_id,
            'voucher_id': self.voucher_id,
            'voucher_code': self.voucher_code,
            'sent_at': _iso(self.sent_at),
            'status': self.status,
            'error_message': self.error_message,
            'attempts': self.attempts,
        }
