from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from dataclasses import dataclass
import logging
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


@dataclass
class Components:
    """Services built once per app from the frozen settings."""
    settings: object
    whatsapp: object
    issuer: object
    game: object


def components() -> Components:
    from flask import current_app
    return current_app.extensions['cheesehouse']


def _build_components(flask_app):
    from cheesehouse.settings import GameSettings
    from cheesehouse.services.game import GameService
    from cheesehouse.services.notifier import NotificationDispatcher, WhatsAppClient
    from cheesehouse.services.phone import PhoneValidator
    from cheesehouse.services.rules import GameRules
    from cheesehouse.services.vouchers import VoucherIssuer

    settings = GameSettings.from_config(flask_app.config)
    for warning in settings.validate():
        flask_app.logger.warning(f"[config] {warning}")
    flask_app.logger.info(
        f"[config] restaurant={settings.restaurant_name} ({settings.location}) env={settings.environment} "
        f"game={settings.min_target_time:.1f}-{settings.max_target_time:.1f}s win={settings.win_discount}% "
        f"lose={settings.lose_discount}% tol={settings.tolerance}"
    )

    whatsapp = WhatsAppClient(settings, flask_app.logger)
    dispatcher = NotificationDispatcher(
        whatsapp, flask_app.logger, inline=bool(flask_app.config.get('TESTING', False))
    )
    issuer = VoucherIssuer(settings)
    game = GameService(settings, PhoneValidator(settings.phone), GameRules(settings), issuer, dispatcher)
    return Components(settings=settings, whatsapp=whatsapp, issuer=issuer, game=game)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    level = getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    flask_app.logger.setLevel(level)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    flask_app.extensions['cheesehouse'] = _build_components(flask_app)

    # Import and register blueprints here
    from cheesehouse.main import main
    flask_app.register_blueprint(main)

    from cheesehouse.api.game import game, clients
    flask_app.register_blueprint(game, url_prefix='/api/game')
    flask_app.register_blueprint(clients, url_prefix='/api/clients')

    from cheesehouse.api.auth import auth
    flask_app.register_blueprint(auth, url_prefix='/api/auth')

    from cheesehouse.api.admin import admin
    flask_app.register_blueprint(admin, url_prefix='/api/admin')

    from cheesehouse.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from cheesehouse.models import StaffUser

    @login_manager.request_loader
    def load_user_from_request(request):
        from cheesehouse.services.auth import user_from_token
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            token = header[len('Bearer '):].strip()
        else:
            token = request.cookies.get('auth_token')
        if not token:
            return None
        return user_from_token(token)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'message': 'Authentication token required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from cheesehouse.models import Role
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            admin_role = Role(name=Role.ADMIN, permissions='{"can_manage_users": true, "can_redeem": true, "can_manage_campaigns": true}')
            employee_role = Role(name=Role.EMPLOYEE, permissions='{"can_redeem": true}')
            db.session.add_all([admin_role, employee_role])

            admin = StaffUser(
                name='Administrator',
                email=flask_app.config['ADMIN_EMAIL'].lower(),
                role=admin_role,
                active=True,
            )
            admin.set_password(flask_app.config['ADMIN_PASSWORD'])
            db.session.add(admin)

            db.session.commit()
            print(f"Database has been reset and seeded! Admin login: {admin.email}")

    @click.command('create-staff')
    @click.option('--name', required=True)
    @click.option('--email', required=True)
    @click.option('--password', required=True)
    @click.option('--role', 'role_name', default='employee', show_default=True)
    def create_staff_command(name, email, password, role_name):
        """Creates a staff account without going through the API."""
        from cheesehouse.models import Role
        with flask_app.app_context():
            role = Role.query.filter_by(name=role_name).first()
            if role is None:
                raise click.ClickException(f"Unknown role {role_name}; run `flask db-reset` first")
            if StaffUser.query.filter_by(email=email.lower()).first():
                raise click.ClickException(f"{email} already exists")
            user = StaffUser(name=name, email=email.lower(), role=role, active=True)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            print(f"Created {role_name} {user.email}")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(create_staff_command)

    return flask_app
