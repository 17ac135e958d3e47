import logging
import os

from flask import Flask, abort, g, jsonify, request
from flask_cors import CORS

from .blueprints.auth import auth_bp
from .blueprints.segments import segments_bp
from .constants import DEFAULT_DATA_DIR_NAME, DEFAULT_DATABASE_FILE
from .extensions import bcrypt, db, limiter, login_manager, segment_registry
from .models import SegmentCollection
from .providers import (
    LanguageSegmentProvider,
    QueryStringSegmentProvider,
    ReferrerSegmentProvider,
    RequestPathSegmentProvider,
)

# Set up logging configuration
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()  # Log to standard output
    ]
)
logger = logging.getLogger('segmentation')

# Initialize Flask application
app = Flask(__name__)
allowed_origins_str = os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:8080,http://127.0.0.1:8080")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(',') if origin.strip()]
CORS(app, origins=allowed_origins, resources={r"/api/*": {}}, supports_credentials=True)

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
local_data_dir = os.path.join(project_root, DEFAULT_DATA_DIR_NAME)

app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', os.urandom(32).hex())
app.config['SEGMENTS_DATA_ROOT'] = os.environ.get('SEGMENTS_DATA_ROOT', local_data_dir)
app.config['SEGMENTS_ENABLED'] = os.environ.get('SEGMENTS_ENABLED', 'true').lower() == 'true'

# Test specific configuration
if app.config.get('TESTING') or os.environ.get('TESTING') == 'true':
    app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'
    app.config['TESTING'] = True
    app.config['RATELIMIT_STORAGE_URI'] = 'memory://'
    logger.info("TESTING mode: Using in-memory SQLite database.")
else:
    db_path_env = os.environ.get('DATABASE_PATH')
    if db_path_env:
        if db_path_env.startswith('sqlite:///'):
            app.config['SQLALCHEMY_DATABASE_URI'] = db_path_env
        else:
            app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{db_path_env}'
        logger.info("Using DATABASE_PATH environment variable: %s", db_path_env)
    else:
        os.makedirs(local_data_dir, exist_ok=True)
        db_path = os.path.join(local_data_dir, DEFAULT_DATABASE_FILE)
        app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{db_path}'
        logger.info("DATABASE_PATH not set. Using file path: %s", db_path)
    app.config['RATELIMIT_STORAGE_URI'] = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')

app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
logger.info("Segment rules are stored under %s", app.config['SEGMENTS_DATA_ROOT'])

# --- Segment Providers ---

segment_registry.register(ReferrerSegmentProvider())
segment_registry.register(LanguageSegmentProvider())
segment_registry.register(QueryStringSegmentProvider("utm_source"))
segment_registry.register(RequestPathSegmentProvider())

# Initialize extensions with the app
db.init_app(app)
bcrypt.init_app(app)
login_manager.init_app(app)
limiter.init_app(app)
segment_registry.init_app(app)

app.register_blueprint(auth_bp)
app.register_blueprint(segments_bp)

with app.app_context():
    db.create_all()

# --- Error Handlers ---


@app.errorhandler(404)
def not_found_error(error):
    """Handles 404 Not Found errors with a JSON response."""
    logger.warning("404 Not Found: %s", request.path)
    return jsonify({'error': 'Resource not found'}), 404


@app.errorhandler(500)
def internal_error(error):
    """Handles 500 Internal Server Errors with a JSON response and logs the error.

    Exceptions raised while computing segments (a malformed rule file, an
    invalid match expression) end up here.
    """
    original = getattr(error, 'original_exception', None) or error
    logger.error("500 Internal Server Error: %s", original, exc_info=original)
    db.session.rollback()
    return jsonify({'error': 'An internal server error occurred'}), 500

# --- Content Routes ---


@app.route('/')
@app.route('/<path:page>')
def render_content(page=''):
    """Stands in for the host's content rendering and reports the segments
    assigned to the request."""
    if page == "api" or page.startswith("api/"):
        abort(404)
    segments = g.get('segments', SegmentCollection())
    return jsonify({'page': '/' + page, 'segments': segments.to_list()})

