import logging
import os

from flask import Flask

from models import db

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _database_uri() -> str:
    """Remote PostgreSQL when DATABASE_URL is set, local SQLite otherwise."""
    database_url = os.environ.get('DATABASE_URL')
    if database_url:
        # Heroku PostgreSQL URL fix (postgres:// → postgresql://)
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        return database_url

    default_sqlite_dir = os.path.join(BASE_DIR, 'instance')
    os.makedirs(default_sqlite_dir, exist_ok=True)
    sqlite_path = os.environ.get('SQLITE_PATH', os.path.join(default_sqlite_dir, 'tournament.db'))
    return f'sqlite:///{sqlite_path}'


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__)

    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'tourneytrack')
    app.config['TOURNAMENT_TIMEZONE'] = os.environ.get('TOURNAMENT_TIMEZONE', 'UTC')
    app.config['RESULT_SUBMIT_ATTEMPTS'] = int(os.environ.get('RESULT_SUBMIT_ATTEMPTS', 3))
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    if test_config:
        app.config.update(test_config)
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        app.config['SQLALCHEMY_DATABASE_URI'] = _database_uri()

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    app.logger.setLevel(app.config['LOG_LEVEL'])

    db.init_app(app)

    from blueprints import api_bp

    app.register_blueprint(api_bp)

    with app.app_context():
        db.create_all()

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5000)
