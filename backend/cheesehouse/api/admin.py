from datetime import datetime, timedelta
from functools import wraps

from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError

from cheesehouse import db, components
from cheesehouse.models import Campaign, Customer, StaffUser, Voucher, utcnow
from cheesehouse.services import customers as customer_store
from cheesehouse.services import stats as stats_service
from cheesehouse.services.auth import AuthError, create_staff, set_active, user_counts
from cheesehouse.services.campaigns import CampaignError, create_campaign, deactivate_campaign, send_campaign
from cheesehouse.services.notifier import NotificationError
from cheesehouse.services.vouchers import redeem_voucher
from cheesehouse.socketio_events import notify_dashboard


admin = Blueprint('admin', __name__)

PERMISSION_REDEEM = 'can_redeem'
PERMISSION_CAMPAIGNS = 'can_manage_campaigns'


def permission_required(permission):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.has_permission(permission):
                return jsonify({'success': False, 'message': 'Permission denied'}), 403
            return view(*args, **kwargs)
        return wrapped
    return decorator


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({'success': False, 'message': 'Administrators only'}), 403
        return view(*args, **kwargs)
    return wrapped


@admin.before_request
@login_required
def require_login():
    # Every admin route needs a valid staff token
    return None


@admin.errorhandler(SQLAlchemyError)
def handle_store_error(exc):
    db.session.rollback()
    current_app.logger.error(f"[admin-error] {exc}")
    return jsonify({'success': False, 'message': 'Internal server error'}), 500


def _staff():
    return current_user._get_current_object()


def _bool_arg(name):
    value = request.args.get(name)
    if value is None:
        return None
    return value.lower() in ('true', '1', 'yes')


def _int_arg(name, default=None):
    value = request.args.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        return default


# ---- Dashboard & stats ----

@admin.route('/dashboard', methods=['GET'])
def dashboard():
    data = stats_service.dashboard(components().whatsapp.status())
    data['users'] = user_counts()
    return jsonify({'success': True, 'dashboard': data})


@admin.route('/stats/period', methods=['GET'])
def period_stats():
    days = max(1, min(_int_arg('days', 7), 365))
    return jsonify({'success': True, 'days': days, 'stats': stats_service.period_stats(days)})


@admin.route('/reports/redemptions', methods=['GET'])
def redemption_report():
    try:
        end = datetime.fromisoformat(request.args['end']) if request.args.get('end') else utcnow()
        start = datetime.fromisoformat(request.args['start']) if request.args.get('start') else end - timedelta(days=30)
    except ValueError:
        return jsonify({'success': False, 'message': 'start and end must be YYYY-MM-DD'}), 400
    start = datetime.combine(start.date(), datetime.min.time())
    end = datetime.combine(end.date(), datetime.min.time())
    if start > end:
        return jsonify({'success': False, 'message': 'start must not be after end'}), 400
    return jsonify({'success': True, 'report': stats_service.redemption_report(start, end)})


@admin.route('/stats/detailed', methods=['GET'])
def detailed_stats():
    return jsonify({'success': True, 'stats': stats_service.detailed_stats(components().whatsapp.status())})


@admin.route('/alerts', methods=['GET'])
def alerts():
    ctx = components()
    return jsonify({'success': True, 'alerts': stats_service.operational_alerts(ctx.whatsapp.status(), ctx.settings)})


@admin.route('/export', methods=['GET'])
@admin_required
def export():
    try:
        data = stats_service.export_data(request.args.get('type', 'complete'), components().whatsapp.status())
    except stats_service.ExportTypeInvalid as exc:
        return jsonify({'success': False, 'message': str(exc)}), 400
    current_app.logger.info(f"[admin-export] type={data['type']} by {current_user.email}")
    return jsonify({'success': True, 'export': data})


@admin.route('/whatsapp/test', methods=['POST'])
@admin_required
def whatsapp_test():
    try:
        components().whatsapp.test_connection()
    except NotificationError as exc:
        current_app.logger.warning(f"[notify-test] {exc}")
        return jsonify({'success': False, 'message': str(exc)}), 502
    return jsonify({'success': True, 'message': 'Messaging API connection ok'})


# ---- Vouchers ----

@admin.route('/vouchers/redeem', methods=['POST'])
@permission_required(PERMISSION_REDEEM)
def redeem():
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    if not isinstance(code, str) or not 6 <= len(code.strip()) <= 20:
        return jsonify({'success': False, 'message': 'A voucher code of 6 to 20 characters is required'}), 400
    result = redeem_voucher(code, _staff())
    if result.success:
        notify_dashboard('voucher_redeemed', {
            'code': result.code,
            'discount': result.discount,
            'customer': result.customer,
            'staff_id': current_user.id,
        })
    return jsonify(result.to_dict()), 200


@admin.route('/vouchers', methods=['GET'])
def list_vouchers():
    query = Voucher.query
    now = utcnow()
    used = _bool_arg('used')
    if used is not None:
        query = query.filter(Voucher.used.is_(used))
    expired = _bool_arg('expired')
    if expired is True:
        query = query.filter(Voucher.expires_at < now)
    elif expired is False:
        query = query.filter(Voucher.expires_at >= now)
    if request.args.get('kind'):
        query = query.filter(Voucher.kind == request.args['kind'])
    customer_id = _int_arg('customer_id')
    if customer_id is not None:
        query = query.filter(Voucher.customer_id == customer_id)
    if request.args.get('code'):
        query = query.filter(Voucher.code.ilike(f"%{request.args['code'].strip()}%"))
    limit = max(1, min(_int_arg('limit', 100), 500))
    vouchers = query.order_by(Voucher.issued_at.desc()).limit(limit).all()
    return jsonify({'success': True, 'vouchers': [v.to_dict(include_customer=True) for v in vouchers]})


# ---- Customers ----

@admin.route('/customers', methods=['GET'])
def list_customers():
    filters = {
        'min_games': _int_arg('min_games'),
        'status': request.args.get('status'),
        'played_today': _bool_arg('played_today'),
        'search': request.args.get('search'),
        'limit': max(1, min(_int_arg('limit', 100), 500)),
    }
    return jsonify({'success': True, 'customers': customer_store.list_customers(filters)})


@admin.route('/customers/pending-approval', methods=['GET'])
def pending_approval():
    customers = customer_store.pending_approval(components().settings)
    return jsonify({'success': True, 'customers': customers})


@admin.route('/customers/<int:customer_id>', methods=['GET'])
def customer_detail(customer_id):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({'success': False, 'message': 'Customer not found'}), 404
    return jsonify({'success': True, 'customer': customer_store.customer_with_stats(customer)})


@admin.route('/customers/<int:customer_id>/approve', methods=['POST'])
def approve_customer(customer_id):
    result = customer_store.approve_customer(customer_id, _staff(), components().settings)
    if result.customer is None:
        return jsonify({'success': False, 'message': result.message}), 404
    return jsonify({
        'success': result.success,
        'message': result.message,
        'customer': result.customer.to_dict(),
    }), 200 if result.success else 400


@admin.route('/customers/<int:customer_id>/status', methods=['POST'])
@admin_required
def customer_status(customer_id):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in (Customer.STATUS_ACTIVE, Customer.STATUS_BLOCKED):
        return jsonify({'success': False, 'message': 'status must be active or blocked'}), 400
    customer = customer_store.set_blocked(customer_id, status == Customer.STATUS_BLOCKED)
    if customer is None:
        return jsonify({'success': False, 'message': 'Customer not found'}), 404
    current_app.logger.info(f"[customer-status] {customer.phone} -> {customer.status} by {current_user.email}")
    return jsonify({'success': True, 'customer': customer.to_dict()})


# ---- Staff users ----

@admin.route('/users', methods=['GET'])
@admin_required
def list_users():
    users = StaffUser.query.order_by(StaffUser.id.asc()).all()
    return jsonify({'success': True, 'users': [u.to_dict() for u in users]})


@admin.route('/users', methods=['POST'])
def create_user():
    data = request.get_json(silent=True) or {}
    try:
        user = create_staff(
            _staff(),
            data.get('name'),
            data.get('email'),
            data.get('password'),
            data.get('role') or 'employee',
        )
    except AuthError as exc:
        return jsonify({'success': False, 'message': exc.message}), exc.status_code
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@admin.route('/users/<int:user_id>/active', methods=['POST'])
def toggle_user(user_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('active'), bool):
        return jsonify({'success': False, 'message': 'active must be true or false'}), 400
    try:
        user = set_active(user_id, data['active'], _staff())
    except AuthError as exc:
        return jsonify({'success': False, 'message': exc.message}), exc.status_code
    return jsonify({'success': True, 'user': user.to_dict()})


# ---- Campaigns ----

@admin.route('/campaigns', methods=['GET'])
@permission_required(PERMISSION_CAMPAIGNS)
def list_campaigns():
    campaigns = Campaign.query.order_by(Campaign.created_at.desc()).all()
    return jsonify({'success': True, 'campaigns': [c.to_dict(include_stats=True) for c in campaigns]})


@admin.route('/campaigns', methods=['POST'])
@permission_required(PERMISSION_CAMPAIGNS)
def new_campaign():
    try:
        campaign = create_campaign(request.get_json(silent=True) or {}, _staff())
    except CampaignError as exc:
        return jsonify({'success': False, 'message': str(exc)}), 400
    return jsonify({'success': True, 'campaign': campaign.to_dict()}), 201


@admin.route('/campaigns/<int:campaign_id>/send', methods=['POST'])
@permission_required(PERMISSION_CAMPAIGNS)
def send(campaign_id):
    campaign = db.session.get(Campaign, campaign_id)
    if campaign is None:
        return jsonify({'success': False, 'message': 'Campaign not found'}), 404
    data = request.get_json(silent=True) or {}
    customer_ids = data.get('customer_ids')
    if not isinstance(customer_ids, list) or not customer_ids:
        return jsonify({'success': False, 'message': 'customer_ids must be a non-empty list'}), 400
    if not all(isinstance(i, int) and not isinstance(i, bool) for i in customer_ids):
        return jsonify({'success': False, 'message': 'customer_ids must be integers'}), 400
    ctx = components()
    try:
        summary = send_campaign(campaign, customer_ids, ctx.issuer, ctx.whatsapp)
    except CampaignError as exc:
        return jsonify({'success': False, 'message': str(exc)}), 400
    return jsonify({'success': True, 'result': summary})


@admin.route('/campaigns/<int:campaign_id>/deactivate', methods=['POST'])
@permission_required(PERMISSION_CAMPAIGNS)
def deactivate(campaign_id):
    campaign = db.session.get(Campaign, campaign_id)
    if campaign is None:
        return jsonify({'success': False, 'message': 'Campaign not found'}), 404
    return jsonify({'success': True, 'campaign': deactivate_campaign(campaign).to_dict()})
