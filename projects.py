from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import EXCLUDE, Schema, fields, validate, validates_schema, ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from datetime import timezone
import logging

from access import AccessPolicy
from auth import auth_required, get_current_user
from errors import ValidationFailed, load_or_fail
from models import db, Project, ProjectMember, Task, User
from notifications import notify
from serializers import member_dict, project_dict, task_dict, user_brief
from workflow import DEFAULT_MEMBER_ROLE, PROJECT_STATUSES

projects_bp = Blueprint('projects', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class _ProjectDatesMixin:

    @validates_schema
    def validate_dates(self, data, **kwargs):
        start, end = data.get('start_date'), data.get('end_date')
        if start and end and end < start:
            raise ValidationError('End date must not be before start date', 'end_date')


class CreateProjectSchema(_ProjectDatesMixin, Schema):
    """建立專案驗證"""
    name = fields.Str(
        required=True,
        validate=validate.Length(min=3, max=100),
        error_messages={'required': 'Project name is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    start_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    end_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)


class UpdateProjectSchema(_ProjectDatesMixin, Schema):
    """更新專案驗證 (狀態只能由 owner 透過這裡明確設定)"""
    name = fields.Str(validate=validate.Length(min=3, max=100))
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    status = fields.Str(validate=validate.OneOf(PROJECT_STATUSES))
    start_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    end_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)


class ProjectFilterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    status = fields.Str(validate=validate.OneOf(PROJECT_STATUSES))
    search = fields.Str(validate=validate.Length(max=100))


class AddMemberSchema(Schema):
    """新增成員驗證,role 是自由字串 (DEVELOPER, DESIGNER, LEAD ...)"""
    user_id = fields.Int(required=True)
    role = fields.Str(validate=validate.Length(min=1, max=50), load_default=DEFAULT_MEMBER_ROLE)

# ============================================
# 建立專案
# ============================================

@projects_bp.route('', methods=['POST'])
@jwt_required()
def create_project():
    """建立新專案,建立者就是 owner (owner 不需要另外建立成員紀錄)"""
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    result = load_or_fail(CreateProjectSchema, request.get_json(silent=True))

    project = Project(
        name=result['name'],
        description=result.get('description'),
        owner_id=current_user.id,
        start_date=result.get('start_date'),
        end_date=result.get('end_date')
    )
    db.session.add(project)
    db.session.commit()

    logger.info(f"Project created: {project.name} by user {current_user.email}")

    return jsonify({
        'success': True,
        'message': 'Project created successfully',
        'data': project_dict(project)
    }), 201

# ============================================
# 查詢我的所有專案
# ============================================

@projects_bp.route('', methods=['GET'])
@jwt_required()
def get_my_projects():
    """查詢我擁有或參與的所有專案 (最新建立的在前)"""
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    filters = load_or_fail(ProjectFilterSchema, request.args.to_dict())
    projects = AccessPolicy(db.session).visible_projects(current_user.id, **filters).all()

    # 一次查出所有任務數,避免 N+1
    task_counts = {}
    if projects:
        task_counts = dict(db.session.query(
            Task.project_id,
            func.count(Task.id)
        ).filter(
            Task.project_id.in_([p.id for p in projects])
        ).group_by(Task.project_id).all())

    return jsonify({
        'success': True,
        'data': [
            project_dict(p, with_members=True, task_count=task_counts.get(p.id, 0))
            for p in projects
        ]
    }), 200

# ============================================
# 查詢單一專案
# ============================================

@projects_bp.route('/<int:project_id>', methods=['GET'])
@jwt_required()
def get_project(project_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    policy = AccessPolicy(db.session)
    project = policy.get_project(current_user.id, project_id)
    tasks = policy.visible_tasks(current_user.id, project_id=project.id).all()

    data = project_dict(project, with_members=True, task_count=len(tasks))
    data['tasks'] = [task_dict(t) for t in tasks]

    return jsonify({'success': True, 'data': data}), 200

# ============================================
# 更新專案 (只有 owner)
# ============================================

@projects_bp.route('/<int:project_id>', methods=['PUT', 'PATCH'])
@jwt_required()
def update_project(project_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    # 成員跟外人一樣只會看到 not found
    project = AccessPolicy(db.session).get_owned_project(current_user.id, project_id)
    result = load_or_fail(UpdateProjectSchema, request.get_json(silent=True))

    start = result.get('start_date', project.start_date)
    end = result.get('end_date', project.end_date)
    if start and end and end < start:
        raise ValidationFailed({'end_date': ['End date must not be before start date']})

    # 記錄變更
    changes = {}
    for field in ['name', 'description', 'status', 'start_date', 'end_date']:
        if field in result:
            old_value = getattr(project, field)
            new_value = result[field]
            if old_value != new_value:
                changes[field] = {'old': _plain(old_value), 'new': _plain(new_value)}
                setattr(project, field, new_value)

    if changes:
        db.session.commit()
        logger.info(f"Project {project_id} updated by user {current_user.email}: {list(changes)}")

    return jsonify({
        'success': True,
        'message': 'Project updated successfully' if changes else 'No changes to update',
        'data': project_dict(project, with_members=True),
        'changes': changes
    }), 200


def _plain(value):
    return value.isoformat() if hasattr(value, 'isoformat') else value

# ============================================
# 刪除專案 (只有 owner)
# ============================================

@projects_bp.route('/<int:project_id>', methods=['DELETE'])
@jwt_required()
def delete_project(project_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    project = AccessPolicy(db.session).get_owned_project(current_user.id, project_id)
    project_name = project.name

    # cascade 會一併刪除成員、任務與留言
    db.session.delete(project)
    db.session.commit()

    logger.info(f"Project deleted: {project_name} by user {current_user.email}")

    return jsonify({'success': True, 'message': 'Project deleted successfully'}), 200

# ============================================
# 專案成員管理
# ============================================

@projects_bp.route('/<int:project_id>/members', methods=['GET'])
@jwt_required()
def get_project_members(project_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    project = AccessPolicy(db.session).get_project(current_user.id, project_id)
    members = ProjectMember.query.filter_by(project_id=project.id)\
        .order_by(ProjectMember.joined_at.asc(), ProjectMember.id.asc()).all()

    return jsonify({
        'success': True,
        'data': {
            'owner': user_brief(project.owner),
            'members': [member_dict(m) for m in members],
            'total': len(members)
        }
    }), 200


@projects_bp.route('/<int:project_id>/members', methods=['POST'])
@jwt_required()
def add_project_member(project_id):
    """
    新增專案成員 (只有 owner)

    先檢查再新增;兩個請求同時新增同一個使用者時,
    第二筆會被資料庫的 unique constraint 擋下,一樣回報 already a member
    """
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    policy = AccessPolicy(db.session)
    project = policy.get_owned_project(current_user.id, project_id)
    result = load_or_fail(AddMemberSchema, request.get_json(silent=True))

    user = db.session.get(User, result['user_id'])
    if not user or not user.is_active:
        raise ValidationFailed({'user_id': ['User does not exist']})

    policy.ensure_not_member(project, user.id)

    member = ProjectMember(project_id=project.id, user_id=user.id, role=result['role'])
    db.session.add(member)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"Concurrent duplicate membership rejected: project {project_id}, user {user.id}")
        raise ValidationFailed(
            {'user_id': ['User is already a member of this project']},
            message='User is already a member of this project'
        )

    logger.info(f"Member added to project {project_id}: user {user.email}")

    notify(
        [user.id],
        'member_added',
        f'You were added to project {project.name}',
        f'{current_user.first_name} {current_user.last_name} added you as {member.role}',
        exclude_user_id=current_user.id
    )

    return jsonify({
        'success': True,
        'message': 'Member added successfully',
        'data': member_dict(member)
    }), 201


@projects_bp.route('/<int:project_id>/members/<int:member_id>', methods=['DELETE'])
@jwt_required()
def remove_project_member(project_id, member_id):
    """移除成員 (用成員紀錄的 id,不是 user id)"""
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    member = AccessPolicy(db.session).get_membership(current_user.id, project_id, member_id)
    removed_user_id = member.user_id

    # 離開專案的人不能再是任務負責人,和刪除成員紀錄在同一個 commit
    unassigned = Task.query.filter_by(
        project_id=member.project_id,
        assignee_id=removed_user_id
    ).update({'assignee_id': None}, synchronize_session='fetch')

    db.session.delete(member)
    db.session.commit()

    logger.info(
        f"Member {member_id} (user {removed_user_id}) removed from project {project_id}, "
        f"{unassigned} task(s) unassigned"
    )

    return jsonify({'success': True, 'message': 'Member removed successfully'}), 200
