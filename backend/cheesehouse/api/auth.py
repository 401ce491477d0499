from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from cheesehouse.services.auth import AuthError, authenticate, change_password, issue_token

auth = Blueprint('auth', __name__)


def _error(exc: AuthError):
    return jsonify({'success': False, 'message': exc.message}), exc.status_code


@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    if not data.get('email') or not data.get('password'):
        return jsonify({'success': False, 'message': 'Email and password are required'}), 400
    try:
        user = authenticate(data['email'], data['password'])
    except AuthError as exc:
        return _error(exc)
    token = issue_token(user)
    response = jsonify({
        'success': True,
        'message': f"Welcome {user.name}",
        'token': token,
        'user': user.to_dict(),
    })
    response.set_cookie('auth_token', token, httponly=True, samesite='Lax')
    return response


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    response = jsonify({'success': True})
    response.delete_cookie('auth_token')
    return response


@auth.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'user': current_user.to_dict()})


@auth.route('/refresh', methods=['POST'])
@login_required
def refresh():
    return jsonify({'success': True, 'token': issue_token(current_user._get_current_object())})


@auth.route('/password', methods=['POST'])
@login_required
def update_password():
    data = request.get_json(silent=True) or {}
    try:
        change_password(current_user._get_current_object(), data.get('current_password'), data.get('new_password'))
    except AuthError as exc:
        return _error(exc)
    return jsonify({'success': True, 'message': 'Password updated'})
