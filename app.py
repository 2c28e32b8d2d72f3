from flask import Flask, request, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
import os

from config import get_config
from errors import NotFound, ValidationFailed
from extensions import bcrypt, cors, jwt, limiter
from models import db

# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定 logging

    1. 分開 info 和 error logs
    2. 使用 RotatingFileHandler 避免 log 檔案過大
    3. 設定統一的 log format
    """
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    # 測試與 debug 模式只輸出到 console
    if app.debug or app.testing:
        app.logger.setLevel(level)
        return

    log_dir = app.config.get('LOG_DIR', 'logs')
    os.makedirs(log_dir, exist_ok=True)

    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    # blueprint 用 logging.getLogger(__name__),掛在 root logger 才收得到
    root = logging.getLogger()
    root.addHandler(info_handler)
    root.addHandler(error_handler)
    root.setLevel(level)

    app.logger.info('Application startup')

# ============================================
# JWT 錯誤處理
# ============================================

def register_jwt_handlers(app):

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return jsonify({
            'success': False,
            'error': 'token_expired',
            'message': 'The token has expired. Please refresh your token or login again.'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return jsonify({
            'success': False,
            'error': 'invalid_token',
            'message': 'Token validation failed. Please provide a valid token.'
        }), 401

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        return jsonify({
            'success': False,
            'error': 'authorization_required',
            'message': 'Access token is required. Please provide an authorization token.'
        }), 401

# ============================================
# 全域錯誤處理
# ============================================

def register_error_handlers(app):

    @app.errorhandler(NotFound)
    def handle_not_found(error):
        """不存在或沒有權限:一律 404,不透露資源是否存在"""
        db.session.rollback()
        return jsonify({'success': False, 'message': error.message}), 404

    @app.errorhandler(ValidationFailed)
    def handle_validation_failed(error):
        db.session.rollback()
        return jsonify({
            'success': False,
            'message': error.message,
            'errors': error.errors
        }), 400

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(error):
        """
        資料庫錯誤

        不重試,不洩漏細節給前端,完整 stack trace 記錄到 log
        """
        db.session.rollback()
        app.logger.error(f"Database error: {str(error)}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'storage_error',
            'message': 'A storage error occurred. Please try again later.'
        }), 500

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'message': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'message': 'The HTTP method is not allowed for this endpoint'
        }), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return jsonify({
            'success': False,
            'message': 'Too many requests. Please try again later.'
        }), 429

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'success': False, 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """最後的防線,捕捉所有沒被處理的 exception"""
        db.session.rollback()
        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return jsonify({
            'success': False,
            'message': 'An unexpected error occurred. Please try again later.'
        }), 500

# ============================================
# Request/Response Logging
# ============================================

def register_request_hooks(app):

    @app.before_request
    def log_request():
        if not app.debug and not app.testing:
            app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        if not app.debug and not app.testing:
            app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        # security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        return response

# ============================================
# App Factory
# ============================================

def create_app(config_class=None):
    config_class = config_class or get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # production 缺少必要設定時直接拒絕啟動
    if not app.testing:
        config_class.validate()

    setup_logging(app)

    # 擴展初始化
    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)
    cors.init_app(
        app,
        supports_credentials=True,
        origins=app.config['CORS_ORIGINS'],
        methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )

    # 註冊 Blueprints
    from auth import auth_bp
    from users import users_bp
    from projects import projects_bp
    from tasks import tasks_bp
    from notifications import notifications_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(projects_bp, url_prefix='/api/projects')
    app.register_blueprint(tasks_bp, url_prefix='/api/tasks')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')

    register_jwt_handlers(app)
    register_error_handlers(app)
    register_request_hooks(app)

    from seed import seed_db_command
    app.cli.add_command(seed_db_command)

    with app.app_context():
        db.create_all()

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """健康檢查端點 (給 load balancer 或監控系統使用)"""
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError as e:
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': 'Database connection failed'
            }), 503

        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'version': app.config['API_VERSION'],
            'timestamp': datetime.utcnow().isoformat()
        }), 200

    return app

# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # production 環境不要用 Flask 內建的 server,應該用 gunicorn "app:create_app()"
    app = create_app()
    app.run(
        debug=app.config['DEBUG'],
        port=int(os.getenv('FLASK_PORT', 8888)),
        host='0.0.0.0'
    )
