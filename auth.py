from flask import Blueprint, request, jsonify
from flask_jwt_extended import create_access_token, create_refresh_token, jwt_required, get_jwt_identity
from marshmallow import Schema, fields, validate
from datetime import datetime
import logging

from errors import load_or_fail
from extensions import bcrypt, limiter
from models import db, User
from serializers import user_detail

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

class RegisterSchema(Schema):
    """註冊輸入驗證"""
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Invalid email format'
    })
    password = fields.Str(
        required=True,
        validate=validate.Length(min=8, max=128, error='Password must be 8-128 characters'),
        error_messages={'required': 'Password is required'}
    )
    first_name = fields.Str(required=True, validate=validate.Length(min=2, max=100))
    last_name = fields.Str(required=True, validate=validate.Length(min=2, max=100))


class LoginSchema(Schema):
    """登入輸入驗證"""
    email = fields.Email(required=True)
    password = fields.Str(required=True)

# ============================================
# Helper Functions (供其他模組使用)
# ============================================

def hash_password(password):
    return bcrypt.generate_password_hash(password).decode('utf-8')


def check_password(user, password):
    return bcrypt.check_password_hash(user.password_hash, password)


def get_current_user():
    """
    取得當前登入的使用者

    token 有效但帳號已停用 (軟刪除) 時也回傳 None,停用的使用者不能再操作任何資源
    """
    identity = get_jwt_identity()
    if not identity:
        return None

    user = db.session.get(User, int(identity))
    if not user or not user.is_active:
        return None
    return user


def auth_required():
    return jsonify({'success': False, 'message': 'Authentication required'}), 401

# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5 per hour")
def register():
    """使用者註冊"""
    result = load_or_fail(RegisterSchema, request.get_json(silent=True))
    email = result['email'].lower()

    # 檢查 email 是否已存在
    if User.query.filter_by(email=email).first():
        return jsonify({'success': False, 'message': 'Email already registered'}), 409

    user = User(
        email=email,
        first_name=result['first_name'],
        last_name=result['last_name'],
        password_hash=hash_password(result['password'])
    )

    db.session.add(user)
    db.session.commit()

    logger.info(f"New user registered: {user.email}")

    return jsonify({
        'success': True,
        'message': 'User registered successfully',
        'data': user_detail(user)
    }), 201

# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    """
    使用者登入

    不區分是 email 錯還是 password 錯,避免帳號枚舉攻擊
    """
    result = load_or_fail(LoginSchema, request.get_json(silent=True))

    user = User.query.filter_by(email=result['email'].lower()).first()

    if not user or not check_password(user, result['password']):
        logger.warning(f"Failed login attempt for email: {result['email']}")
        return jsonify({'success': False, 'message': 'Invalid credentials'}), 401

    # 停用的帳號不能登入,但歷史資料 (專案、留言) 保留
    if not user.is_active:
        logger.warning(f"Inactive user login attempt: {user.email}")
        return jsonify({'success': False, 'message': 'Account is disabled'}), 403

    access_token = create_access_token(identity=str(user.id))
    refresh_token = create_refresh_token(identity=str(user.id))

    user.last_login = datetime.utcnow()
    db.session.commit()

    logger.info(f"User logged in: {user.email}")

    return jsonify({
        'success': True,
        'message': 'Login successful',
        'data': {
            'access_token': access_token,
            'refresh_token': refresh_token,
            'user': user_detail(user)
        }
    }), 200

# ============================================
# Token 刷新 API
# ============================================

@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    """用 refresh token 換新的 access token"""
    user = get_current_user()
    if not user:
        return jsonify({'success': False, 'message': 'Invalid or inactive user'}), 401

    return jsonify({
        'success': True,
        'data': {'access_token': create_access_token(identity=str(user.id))}
    }), 200

# ============================================
# 取得當前使用者資訊
# ============================================

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    return jsonify({'success': True, 'data': user_detail(current_user)}), 200
