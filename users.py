from flask import Blueprint, current_app, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import EXCLUDE, Schema, fields, validate
from sqlalchemy import func, or_
import logging

from access import project_visibility, task_visibility
from auth import auth_required, check_password, get_current_user, hash_password
from errors import NotFound, ValidationFailed, load_or_fail
from models import db, Comment, Project, Task, User
from serializers import user_brief, user_detail
from workflow import TASK_STATUSES, USER_ROLES

users_bp = Blueprint('users', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class UpdateProfileSchema(Schema):
    """個人資料更新驗證"""
    first_name = fields.Str(validate=validate.Length(min=2, max=100))
    last_name = fields.Str(validate=validate.Length(min=2, max=100))
    avatar_url = fields.Url(allow_none=True)


class ChangePasswordSchema(Schema):
    """密碼修改驗證 (新密碼長度由 PASSWORD_MIN_LENGTH 決定)"""
    current_password = fields.Str(required=True)
    new_password = fields.Str(required=True, validate=validate.Length(max=128))


class UserFilterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    search = fields.Str(validate=validate.Length(max=100))
    role = fields.Str(validate=validate.OneOf(USER_ROLES))

# ============================================
# 使用者列表 (只列出啟用中的帳號)
# ============================================

@users_bp.route('', methods=['GET'])
@jwt_required()
def get_users():
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    filters = load_or_fail(UserFilterSchema, request.args.to_dict())

    query = User.query.filter(User.is_active.is_(True))

    search = filters.get('search')
    if search:
        query = query.filter(or_(
            User.first_name.icontains(search, autoescape=True),
            User.last_name.icontains(search, autoescape=True),
            User.email.icontains(search, autoescape=True)
        ))

    if filters.get('role'):
        query = query.filter(User.role == filters['role'])

    users = query.order_by(User.first_name.asc(), User.id.asc()).all()

    return jsonify({
        'success': True,
        'data': [dict(user_brief(u), role=u.role, created_at=u.created_at.isoformat()) for u in users]
    }), 200

# ============================================
# 我的統計
# ============================================

@users_bp.route('/stats', methods=['GET'])
@jwt_required()
def get_user_stats():
    """
    取得當前使用者的統計

    只看自己:專案數 (owner 或成員) 與任務狀態分布 (指派給我,或在我看得到的專案裡)
    """
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    total_projects = Project.query.filter(project_visibility(current_user.id)).count()

    rows = db.session.query(
        Task.status,
        func.count(Task.id)
    ).filter(
        or_(Task.assignee_id == current_user.id, task_visibility(current_user.id))
    ).group_by(Task.status).all()

    counts = dict(rows)
    tasks_by_status = {status: counts.get(status, 0) for status in TASK_STATUSES}

    return jsonify({
        'success': True,
        'data': {
            'total_projects': total_projects,
            'tasks_by_status': tasks_by_status,
            'total_tasks': sum(tasks_by_status.values())
        }
    }), 200

# ============================================
# 查詢單一使用者 (公開資料)
# ============================================

@users_bp.route('/<int:user_id>', methods=['GET'])
@jwt_required()
def get_user(user_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('User')

    data = dict(user_brief(user), role=user.role, is_active=user.is_active,
                created_at=user.created_at.isoformat())
    data['counts'] = {
        'projects': Project.query.filter_by(owner_id=user.id).count(),
        'tasks': Task.query.filter_by(assignee_id=user.id).count(),
        'comments': Comment.query.filter_by(author_id=user.id).count()
    }

    return jsonify({'success': True, 'data': data}), 200

# ============================================
# 更新個人資料 (永遠只能改自己)
# ============================================

@users_bp.route('', methods=['PUT', 'PATCH'])
@jwt_required()
def update_me():
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    result = load_or_fail(UpdateProfileSchema, request.get_json(silent=True))

    for field in ['first_name', 'last_name', 'avatar_url']:
        if field in result:
            setattr(current_user, field, result[field])

    db.session.commit()
    logger.info(f"User profile updated: {current_user.email}")

    return jsonify({
        'success': True,
        'message': 'User updated successfully',
        'data': user_detail(current_user)
    }), 200

# ============================================
# 修改密碼
# ============================================

@users_bp.route('/change-password', methods=['POST'])
@jwt_required()
def change_password():
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    result = load_or_fail(ChangePasswordSchema, request.get_json(silent=True))

    min_length = current_app.config.get('PASSWORD_MIN_LENGTH', 8)
    if len(result['new_password']) < min_length:
        raise ValidationFailed({'new_password': [f'Password must be at least {min_length} characters']})

    if not check_password(current_user, result['current_password']):
        raise ValidationFailed(
            {'current_password': ['Current password is incorrect']},
            message='Current password is incorrect'
        )

    current_user.password_hash = hash_password(result['new_password'])
    db.session.commit()

    logger.info(f"Password changed for user: {current_user.email}")

    return jsonify({'success': True, 'message': 'Password changed successfully'}), 200

# ============================================
# 停用帳號 (軟刪除)
# ============================================

@users_bp.route('', methods=['DELETE'])
@jwt_required()
def deactivate_me():
    """
    停用自己的帳號

    不刪除資料列:擁有的專案、留言、任務指派都保留給其他成員看
    """
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    current_user.is_active = False
    db.session.commit()

    logger.info(f"User deactivated: {current_user.email}")

    return jsonify({'success': True, 'message': 'Account deactivated successfully'}), 200
