"""
Flask Application Factory Module

Factory Pattern Flow:
    create_app() → Load Config → Logging → Initialize Extensions → Services
                 → Register Blueprints → Error Handlers → CLI → Return App

Usage:
    # Development
    app = create_app('development')
    app.run(debug=True)

    # Production (with Gunicorn)
    gunicorn -w 4 -b 0.0.0.0:5000 "backend.app:create_app('production')"

    # Testing
    app = create_app('testing')
    test_client = app.test_client()
"""

import os
from datetime import timedelta

from flask import Flask, jsonify, request
from loguru import logger

from backend.config import config
from backend.src.api import api_bp
from backend.src.extensions import cors, db, jwt
from backend.src.services import build_services
from backend.src.utils import utcnow
from backend.src.utils.errors import TaskManagerError
from backend.src.utils.logging_setup import configure_logging


def create_app(config_name=None):
    """
    Application Factory - Creates and configures a Flask application instance.

    Args:
        config_name (str, optional): 'development', 'production' or 'testing'.
            If None, reads from FLASK_ENV, defaulting to 'development'.

    Returns:
        Flask: Fully configured Flask application instance ready to run
    """

    # ========================================================================
    # STEP 1: Create Flask Application Instance and Load Configuration
    # ========================================================================

    app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')
    app.config.from_object(config[config_name])

    configure_logging(app.config['LOG_LEVEL'], colorize=not app.testing)
    logger.info("Starting application with '{}' configuration", config_name)

    # ========================================================================
    # STEP 2: Initialize Flask Extensions
    # ========================================================================

    db.init_app(app)
    jwt.init_app(app)

    # Allows the frontend running on a different port to access the API
    cors.init_app(app, resources={
        r"/api/*": {
            "origins": app.config['CORS_ORIGINS'],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "expose_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    # ========================================================================
    # STEP 3: Wire the Service Layer and Register Blueprints
    # ========================================================================

    # Routes reach these through backend.src.services.get_services()
    app.extensions['taskmanager'] = build_services(app.config)

    # Blueprint prefix is /api, so routes become /api/tasks, /api/auth/login, etc.
    app.register_blueprint(api_bp)

    # ========================================================================
    # STEP 4: Database Initialization
    # ========================================================================

    # Only in development - production should use migrations
    with app.app_context():
        if config_name == 'development':
            db.create_all()
            logger.info("Database tables created/verified")

    # ========================================================================
    # STEP 5: Application Routes (Non-Blueprint Routes)
    # ========================================================================

    @app.route('/health')
    def health_check():
        """Health check endpoint for load balancers and monitoring"""
        return jsonify({
            'status': 'healthy',
            'service': 'task-manager-api',
            'version': '1.0.0'
        }), 200

    @app.route('/')
    def index():
        return jsonify({
            'message': 'Task Manager API',
            'version': '1.0.0',
            'endpoints': {
                'health': '/health',
                'auth': '/api/auth',
                'tasks': '/api/tasks',
                'departments': '/api/departments'
            }
        }), 200

    # ========================================================================
    # STEP 6: Register Global Error Handlers
    # ========================================================================

    @app.errorhandler(TaskManagerError)
    def handle_task_manager_error(error):
        """
        Turn service-layer errors into JSON responses.

        The session is rolled back so a failed operation never leaves
        half-applied changes behind for the next request.
        """
        db.session.rollback()
        if error.status_code >= 500:
            logger.error("{} {} failed: {}: {}", request.method, request.path, error.kind, error.message)
        else:
            logger.info("{} {} -> {} {}: {}", request.method, request.path,
                        error.status_code, error.kind, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'NotFound',
            'message': 'The requested URL was not found on the server'
        }), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Rollback the session and hide internal details from the client"""
        db.session.rollback()
        logger.exception("Unhandled error on {} {}", request.method, request.path)
        return jsonify({
            'error': 'InternalServerError',
            'message': 'An unexpected error occurred. Please try again later.'
        }), 500

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({
            'error': 'BadRequest',
            'message': 'The request could not be understood by the server'
        }), 400

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'MethodNotAllowed',
            'message': f'The {request.method} method is not allowed for this endpoint'
        }), 405

    # ========================================================================
    # STEP 7: Register JWT Error Handlers
    # ========================================================================

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': 'TokenExpired',
            'message': 'The authentication token has expired. Please login again.'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': 'InvalidToken',
            'message': 'Signature verification failed or token is malformed'
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': 'AuthorizationRequired',
            'message': 'Request does not contain a valid access token'
        }), 401

    # ========================================================================
    # STEP 8: Request Hooks
    # ========================================================================

    @app.before_request
    def before_request_func():
        if app.debug:
            logger.debug("{} {}", request.method, request.path)

    @app.after_request
    def after_request_func(response):
        """Add security headers to all responses"""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        # Forces HTTPS for 1 year
        if config_name == 'production':
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        db.session.remove()

    # ========================================================================
    # STEP 9: Register CLI Commands
    # ========================================================================

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables (flask init-db)"""
        with app.app_context():
            db.create_all()
            logger.info('Database initialized successfully')

    @app.cli.command('seed-db')
    def seed_db_command():
        """
        Seed database with sample data (development only)

        Creates a SUPER_ADMIN, an Engineering department headed by a manager,
        one team member and a few tasks scored by the priority engine.
        """
        from backend.src.models.enums import Role
        from backend.src.models.user import User
        from backend.src.services.authorization import Principal

        services = app.extensions['taskmanager']

        with app.app_context():
            if User.query.first():
                logger.warning('Database already contains data. Skipping seed. Use "flask reset-db" first.')
                return

            admin = User(name='Admin User', email='admin@example.com', role=Role.SUPER_ADMIN.value)
            admin.set_password('admin12345')
            manager = User(name='Maya Manager', email='manager@example.com')
            manager.set_password('manager12345')
            member = User(name='Tom Member', email='member@example.com')
            member.set_password('member12345')
            db.session.add_all([admin, manager, member])
            db.session.commit()

            admin_principal = Principal.from_user(admin)
            department = services.departments.create_department(admin_principal, {
                'name': 'Engineering',
                'description': 'Product engineering team',
                'max_members': 10,
                'head_id': manager.id,
            })
            services.departments.add_member(admin_principal, department.id, member.id)

            now = utcnow()
            manager_principal = Principal.from_user(manager)
            samples = [
                {
                    'title': 'Fix login bug',
                    'description': "Users can't log in on Safari",
                    'category': 'Urgent',
                    'tags': ['bug', 'critical'],
                    'estimated_time': 25,
                    'deadline': now + timedelta(hours=20),
                },
                {
                    'title': 'Write API documentation',
                    'category': 'Work',
                    'tags': ['docs'],
                    'estimated_time': 360,
                    'deadline': now + timedelta(days=10),
                },
                {
                    'title': 'Plan team offsite',
                    'category': 'Personal',
                },
            ]
            for data in samples:
                services.tasks.create_task(manager_principal, dict(data, assigned_to=member.id))

            logger.info('Database seeding complete. Logins: admin@example.com / admin12345, '
                        'manager@example.com / manager12345, member@example.com / member12345')

    @app.cli.command('reset-db')
    def reset_db_command():
        """Drop and recreate all tables (PERMANENTLY DELETES ALL DATA)"""
        with app.app_context():
            logger.warning('This will DELETE ALL DATA in {}', app.config['SQLALCHEMY_DATABASE_URI'])
            confirm = input('   Type "yes" to confirm: ')

            if confirm.lower() != 'yes':
                logger.info('Reset cancelled')
                return

            db.drop_all()
            db.create_all()
            logger.info('Database reset complete! Use "flask seed-db" to add sample data.')

    @app.cli.command('send-reminders')
    def send_reminders_command():
        """Send deadline reminders for tasks due soon (run from cron)"""
        with app.app_context():
            sent = app.extensions['taskmanager'].notifications.check_deadlines()
            logger.info('Sent {} deadline reminder(s)', sent)

    logger.debug("Application factory complete - app ready to run")
    return app


if __name__ == '__main__':
    # Development server only; use gunicorn in production
    app = create_app('development')
    app.run(host='0.0.0.0', port=5000, debug=True, use_reloader=True, threaded=True)
