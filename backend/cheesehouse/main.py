from flask import Blueprint, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from cheesehouse import db, components

VERSION = '1.0.0'

main = Blueprint('main', __name__)


@main.route('/health')
def health():
    ctx = components()
    database = 'ok'
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError as exc:
        db.session.rollback()
        database = f"error: {exc}"
    status = 200 if database == 'ok' else 503
    return jsonify({
        'status': 'running',
        'service': f"{ctx.settings.restaurant_name} Timing Game",
        'version': VERSION,
        'environment': ctx.settings.environment,
        'database': database,
        'whatsapp': ctx.whatsapp.status(),
    }), status


@main.route('/info')
def info():
    settings = components().settings
    return jsonify({
        'restaurant': settings.restaurant_name,
        'location': settings.location,
        'version': VERSION,
        'endpoints': {
            'api_submit': '/api/game/submit',
            'api_stats': '/api/game/stats',
            'api_config': '/api/game/config',
            'api_target': '/api/game/target',
            'health': '/health',
        },
    })


@main.app_errorhandler(404)
def not_found(_error):
    return jsonify({
        'error': 'Endpoint not found',
        'message': 'The requested route does not exist',
        'path': request.path,
    }), 404
