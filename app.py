import os, sys, hmac, logging
from functools import wraps
from flask import Flask, Blueprint, Response, request, abort, current_app, jsonify, send_from_directory
from werkzeug.exceptions import BadRequest, HTTPException
from werkzeug.serving import WSGIRequestHandler
from pythonjsonlogger.json import JsonFormatter
from dotenv import load_dotenv
from models import db, Post, utcnow
from repository import PostRepository
from errors import PostNotFound, StorageError
from slugs import slugify
from typing import Any, Callable, Optional

file_dir : str = os.path.dirname(os.path.realpath(__file__))
frozen_dir : str = os.path.dirname(sys.executable)
executable_dir : str = file_dir
if getattr(sys, 'frozen', False):
    executable_dir = frozen_dir

STATIC_DIR : str = os.path.join(executable_dir, 'static')
KEY_HEADER : str = 'X-MALT-KEY'
PAYLOAD_FIELDS : tuple[str, ...] = ('slug', 'title', 'description', 'content')

logger : logging.Logger = logging.getLogger('malt')
bp : Blueprint = Blueprint('malt', __name__)


def configure_logging(level: str = 'INFO') -> None:
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(level.upper())


def load_config() -> dict[str, Any]:
    '''Read settings from the environment (and a .env file, if one exists).'''
    load_dotenv()
    return {
        'MALT_SECRET': os.getenv('MALT_SECRET', ''),
        'SQLALCHEMY_DATABASE_URI': os.getenv('DATABASE_URL', 'sqlite:///malt.db'),
        'MALT_HOST': os.getenv('MALT_HOST', '0.0.0.0'),
        'MALT_PORT': int(os.getenv('MALT_PORT', '8080')),
        'MALT_TIMEOUT': float(os.getenv('MALT_TIMEOUT', '10')),
        'MALT_LOG_LEVEL': os.getenv('MALT_LOG_LEVEL', 'INFO'),
        'MALT_STATIC_DIR': os.getenv('MALT_STATIC_DIR', STATIC_DIR),
    }


def create_app(config: Optional[dict[str, Any]] = None) -> Flask:
    # The catch-all route owns every non-API path, so Flask's /static route is off.
    app : Flask = Flask(__name__, static_folder=None)
    app.config.update(load_config())
    if config:
        app.config.update(config)
    configure_logging(app.config['MALT_LOG_LEVEL'])

    db.init_app(app)
    with app.app_context():
        db.create_all()
    app.extensions['malt.posts'] = PostRepository(db)

    app.register_blueprint(bp)
    register_error_handlers(app)
    app.before_request(log_request_start)
    app.after_request(log_request_end)
    return app


def posts() -> PostRepository:
    return current_app.extensions['malt.posts']


def require_key(view: Callable) -> Callable:
    '''Reject the request with 401 unless X-MALT-KEY matches the configured secret.'''
    @wraps(view)
    def wrapped(*args, **kwargs):
        secret : str = current_app.config.get('MALT_SECRET') or ''
        supplied : str = request.headers.get(KEY_HEADER, '')
        # an unset secret locks the write endpoints instead of opening them
        if not secret or not hmac.compare_digest(supplied.encode(), secret.encode()):
            logger.warning({'msg': 'bad_key', 'method': request.method, 'path': request.path})
            abort(401)
        return view(*args, **kwargs)
    return wrapped


def read_payload() -> dict[str, str]:
    '''Decode the request body into the post fields. Missing or null fields become "".'''
    try:
        data = request.get_json(force=True)
    except BadRequest:
        abort(400)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        abort(400)

    payload : dict[str, str] = {}
    for field in PAYLOAD_FIELDS:
        value = data.get(field)
        if value is None:
            value = ''
        if not isinstance(value, str):
            abort(400)
        payload[field] = value
    return payload


@bp.get('/api/posts')
def list_posts() -> Response:
    return jsonify([post.to_summary() for post in posts().list_summaries()])


@bp.get('/api/posts/<slug>')
def get_post(slug: str) -> Response:
    return jsonify(posts().get(slug).to_dict())


@bp.post('/api/publish')
@require_key
def publish() -> Response:
    payload : dict[str, str] = read_payload()
    new_post : Post = Post(
        slug=payload['slug'] or slugify(payload['title']),
        title=payload['title'],
        description=payload['description'],
        content=payload['content'],
        published_at=utcnow(),
    )
    slug : str = posts().upsert(new_post)
    logger.info({'msg': 'post_published', 'slug': slug})
    return jsonify({'status': 'published', 'link': f'/post/{slug}'})


@bp.put('/api/posts/<slug>')
@require_key
def update_post(slug: str) -> Response:
    payload : dict[str, str] = read_payload()
    # the path decides which post changes; a slug in the body is ignored
    posts().update(slug, payload['title'], payload['description'], payload['content'])
    return jsonify({'status': 'updated', 'slug': slug})


@bp.delete('/api/posts/<slug>')
@require_key
def delete_post(slug: str) -> Response:
    posts().delete(slug)
    return jsonify({'status': 'deleted', 'slug': slug})


@bp.route('/', defaults={'path': ''}, methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
@bp.route('/<path:path>', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
def frontend(path: str) -> Response:
    '''Serve the single-page app's entry file for anything the API doesn't claim.'''
    return send_from_directory(current_app.config['MALT_STATIC_DIR'], 'index.html')


def text_error(message: str, status: int) -> Response:
    return Response(message, status=status, mimetype='text/plain')


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(400)
    def bad_json(_error) -> Response:
        return text_error('Bad JSON', 400)

    @app.errorhandler(401)
    def not_allowed(_error) -> Response:
        return text_error('Go away', 401)

    @app.errorhandler(PostNotFound)
    def post_not_found(_error) -> Response:
        return text_error('Post not found', 404)

    @app.errorhandler(StorageError)
    def storage_failed(error: StorageError) -> Response:
        prefix : str = 'Failed to save' if request.endpoint == 'malt.publish' else 'Database error'
        return text_error(f'{prefix}: {error}', 500)

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException) -> Response:
        return text_error(f'{error.code} {error.name}', error.code or 500)


def log_request_start() -> None:
    logger.info({'msg': 'request_start', 'method': request.method, 'path': request.path})


def log_request_end(response: Response) -> Response:
    logger.info({'msg': 'request_end', 'method': request.method, 'path': request.path, 'status': response.status_code})
    return response


class MaltRequestHandler(WSGIRequestHandler):
    '''Werkzeug handler with a socket timeout, so a stalled client can't hold a thread forever.'''
    timeout : float = 10


def serve(app: Flask) -> None:
    '''Run the threaded server until interrupted, then release the database engine.'''
    handler = type('MaltRequestHandler', (MaltRequestHandler,), {'timeout': app.config['MALT_TIMEOUT']})
    host : str = app.config['MALT_HOST']
    port : int = app.config['MALT_PORT']
    logger.info({'msg': 'malt_starting', 'host': host, 'port': port})
    try:
        app.run(host=host, port=port, threaded=True, request_handler=handler)
    finally:
        with app.app_context():
            db.engine.dispose()
        logger.info({'msg': 'malt_stopped'})


if __name__ == '__main__':
    serve(create_app())
