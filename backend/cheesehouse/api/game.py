from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from cheesehouse import db, components
from cheesehouse.services.customers import customer_with_stats
from cheesehouse.services.game import GameSubmission, SubmissionRejected
from cheesehouse.services.stats import public_stats


game = Blueprint('game', __name__)
clients = Blueprint('clients', __name__)


def _internal_error(tag, exc):
    db.session.rollback()
    current_app.logger.error(f"[{tag}] {exc}")
    return jsonify({'success': False, 'message': 'Internal server error'}), 500


def _process(data):
    try:
        submission = GameSubmission.from_payload(data)
        response = components().game.process(submission)
    except SubmissionRejected as exc:
        current_app.logger.info(f"[game-reject] {exc}")
        return jsonify({'success': False, 'message': str(exc)}), 400
    except SQLAlchemyError as exc:
        return _internal_error('game-error', exc)

    if response.success:
        current_app.logger.info(f"[game-ok] code={response.code} discount={response.discount}%")
    else:
        current_app.logger.info(f"[game-declined] {response.message}")
    return jsonify(response.to_dict()), 200


@game.route('/submit', methods=['POST'])
def submit_result():
    return _process(request.get_json(silent=True))


@game.route('/stats', methods=['GET'])
def get_stats():
    try:
        stats = public_stats(components().settings.restaurant_name)
    except SQLAlchemyError as exc:
        return _internal_error('stats-error', exc)
    return jsonify({'success': True, 'stats': stats})


@game.route('/config', methods=['GET'])
def get_config():
    return jsonify({'success': True, 'config': components().game.public_config()})


@game.route('/target', methods=['GET'])
def generate_target():
    return jsonify({'success': True, 'target_time': components().game.generate_target_time()})


@game.route('/test', methods=['POST'])
def test_game():
    """Runs a canned winning submission. Not available in production."""
    if components().settings.is_production:
        return jsonify({'error': 'Endpoint not available in production'}), 404
    return _process({
        'customer': {'first_name': 'Test', 'last_name': 'User', 'phone': '+5491123456789'},
        'result': {'target_time': 7.5, 'achieved_time': 7.45},
    })


@clients.route('/<string:phone>', methods=['GET'])
def get_client_by_phone(phone):
    customer = components().game.find_by_phone(phone)
    if customer is None:
        return jsonify({'success': False, 'message': 'Customer not found'}), 404
    stats = customer_with_stats(customer)
    return jsonify({
        'success': True,
        'customer': {
            'first_name': stats['first_name'],
            'last_name': stats['last_name'],
            'total_games': stats['total_games'],
            'games_won': stats['games_won'],
            'customer_type': stats['customer_type'],
            'last_played_at': stats['last_played_at'],
        },
    })
