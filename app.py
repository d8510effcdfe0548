from flask import Flask, request, jsonify
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
from config import get_config
from models import db, utcnow
from extensions import jwt, bcrypt, cors, limiter
from common import error_response
import logging
from logging.handlers import RotatingFileHandler
import os


# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定 logging 系統

    1. 分開 info 和 error logs
    2. 使用 RotatingFileHandler 避免 log 檔案過大
    3. debug / testing 模式不寫檔
    """
    if app.debug or app.testing:
        return

    log_dir = app.config.get('LOG_DIR', 'logs')
    if not os.path.exists(log_dir):
        os.mkdir(log_dir)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    # Info log handler (記錄一般資訊)
    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    # Error log handler (只記錄錯誤)
    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    # root logger 也要掛,各模組的 getLogger(__name__) 才會寫進檔案
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    for target in (app.logger, logging.getLogger()):
        target.addHandler(info_handler)
        target.addHandler(error_handler)
        target.setLevel(level)

    app.logger.info('Application startup')

# ============================================
# JWT 錯誤處理
# ============================================

def register_jwt_handlers(app):

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        """處理 token 過期"""
        app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return error_response('The token has expired. Please refresh your token or login again.', 401)

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        """處理無效的 token"""
        app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return error_response('Token validation failed. Please provide a valid token.', 401)

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        """處理缺少 token"""
        app.logger.warning(f"Unauthorized access attempt from: {request.remote_addr}, error: {error}")
        return error_response('Access token is required. Please provide an authorization token.', 401)

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return error_response('The token has been revoked. Please login again.', 401)

# ============================================
# 全域錯誤處理
# ============================================

def register_error_handlers(app):

    @app.errorhandler(400)
    def bad_request(error):
        return error_response('The request is malformed or invalid', 400)

    @app.errorhandler(404)
    def not_found(error):
        return error_response('The requested resource does not exist', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('The HTTP method is not allowed for this endpoint', 405)

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        """處理 rate limit 超過"""
        app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return error_response('Too many requests. Please try again later.', 429)

    @app.errorhandler(500)
    def internal_server_error(error):
        """
        處理 500 錯誤

        不洩漏錯誤細節給前端,完整 stack trace 寫進 log
        """
        db.session.rollback()
        app.logger.error(f"Internal server error: {str(error)}", exc_info=True)
        return error_response('An internal error occurred. Our team has been notified.', 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """最後的防線,捕捉所有沒被處理的 exception"""
        if isinstance(error, HTTPException):
            return error_response(error.description, error.code)

        db.session.rollback()
        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return error_response('An unexpected error occurred. Please try again later.', 500)

# ============================================
# Request/Response Logging
# ============================================

def register_request_hooks(app):

    @app.before_request
    def log_request():
        if not app.debug:
            app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        if not app.debug:
            app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        # security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response

# ============================================
# Health Check / API 首頁
# ============================================

def register_system_routes(app):

    def health_check():
        """
        健康檢查端點

        用於 load balancer 或監控系統檢查服務是否正常
        """
        try:
            db.session.execute(text('SELECT 1'))
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'timestamp': utcnow().isoformat()
            }), 200
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': 'Database connection failed'
            }), 503

    app.add_url_rule('/health', 'health', health_check, methods=['GET'])
    app.add_url_rule('/health-check', 'health_check', health_check, methods=['GET'])

    @app.route('/')
    @limiter.limit('10 per minute')
    def home():
        """API 首頁: 列出所有端點和 rate limit"""
        return jsonify({
            'message': 'Team Task API',
            'version': app.config.get('API_VERSION'),
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': '/auth/register', 'methods': ['POST']},
                    'login': {'path': '/auth/login', 'methods': ['POST']},
                    'refresh': {'path': '/auth/refresh', 'methods': ['POST']},
                    'logout': {'path': '/auth/logout', 'methods': ['POST']},
                    'me': {'path': '/auth/me', 'methods': ['GET']},
                    'change_password': {'path': '/auth/change-password', 'methods': ['POST']},
                    'reset_password': {'path': '/auth/reset-password', 'methods': ['POST']}
                },
                'users': {
                    'list': {'path': '/users', 'methods': ['GET', 'POST']},
                    'simple': {'path': '/users/simple', 'methods': ['GET']},
                    'me': {'path': '/users/me', 'methods': ['GET']},
                    'detail': {'path': '/users/:id', 'methods': ['GET', 'PUT', 'DELETE']},
                    'profile': {'path': '/users/:id/profile', 'methods': ['GET']}
                },
                'projects': {
                    'list': {'path': '/projects', 'methods': ['GET', 'POST']},
                    'mine': {'path': '/projects/my-projects', 'methods': ['GET']},
                    'detail': {'path': '/projects/:id', 'methods': ['GET', 'PUT', 'DELETE']},
                    'stats': {'path': '/projects/:id/stats', 'methods': ['GET']},
                    'members': {'path': '/projects/:id/members', 'methods': ['POST']},
                    'member': {'path': '/projects/:id/members/:memberId', 'methods': ['DELETE']},
                    'member_role': {'path': '/projects/:id/members/:memberId/role', 'methods': ['PATCH']},
                    'comments': {'path': '/projects/:id/comments', 'methods': ['GET', 'POST']}
                },
                'tasks': {
                    'list': {'path': '/tasks', 'methods': ['GET', 'POST']},
                    'mine': {'path': '/tasks/my-tasks', 'methods': ['GET']},
                    'overdue': {'path': '/tasks/overdue', 'methods': ['GET']},
                    'detail': {'path': '/tasks/:id', 'methods': ['GET', 'PUT', 'DELETE']},
                    'toggle_complete': {'path': '/tasks/:id/toggle-complete', 'methods': ['PATCH']},
                    'comments': {'path': '/tasks/:id/comments', 'methods': ['POST']},
                    'attachments': {'path': '/tasks/:id/attachments', 'methods': ['POST']}
                },
                'categories': {
                    'list': {'path': '/categories', 'methods': ['GET', 'POST']},
                    'global': {'path': '/categories/global', 'methods': ['GET']},
                    'mine': {'path': '/categories/my-categories', 'methods': ['GET']},
                    'detail': {'path': '/categories/:id', 'methods': ['GET', 'PUT', 'DELETE']}
                }
            },
            'rate_limits': {
                'default': '200 per hour, 1000 per day',
                'auth': {
                    'register': '5 per hour',
                    'login': '10 per minute',
                    'reset_password': '5 per hour'
                }
            }
        })

    # 開發環境專用
    if app.debug:
        @app.route('/debug/routes')
        def debug_routes():
            """列出所有註冊的路由"""
            routes = []
            for rule in app.url_map.iter_rules():
                routes.append({
                    'endpoint': rule.endpoint,
                    'methods': sorted(rule.methods),
                    'path': str(rule)
                })
            return jsonify({'routes': routes})

# ============================================
# Application Factory
# ============================================

def create_app(config_name=None):
    config_class = get_config(config_name)
    config_class.validate()

    app = Flask(__name__)
    app.config.from_object(config_class)

    setup_logging(app)

    # 擴展初始化
    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)

    # 不要用 '*',允許的來源從設定讀取
    cors.init_app(
        app,
        supports_credentials=True,
        origins=app.config['CORS_ORIGINS'],
        methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )

    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    # 註冊 Blueprints
    from auth import auth_bp
    from users import users_bp
    from projects import projects_bp
    from tasks import tasks_bp
    from categories import categories_bp

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(users_bp, url_prefix='/users')
    app.register_blueprint(projects_bp, url_prefix='/projects')
    app.register_blueprint(tasks_bp, url_prefix='/tasks')
    app.register_blueprint(categories_bp, url_prefix='/categories')

    register_jwt_handlers(app)
    register_error_handlers(app)
    register_request_hooks(app)
    register_system_routes(app)

    return app

# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # production 環境應該用 gunicorn 或 uwsgi
    app = create_app()
    port = int(os.getenv('FLASK_PORT', 8888))

    app.run(
        debug=app.debug,
        port=port,
        host='0.0.0.0'
    )
