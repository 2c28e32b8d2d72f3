from flask import Blueprint, current_app, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import EXCLUDE, Schema, fields, pre_load, validate
from sqlalchemy import func
from datetime import timezone
import logging

from access import AccessPolicy
from auth import auth_required, get_current_user
from errors import load_or_fail
from models import db, Comment, Task
from notifications import notify
from serializers import comment_dict, task_dict
from workflow import TASK_PRIORITIES, TASK_STATUSES, TaskWorkflow

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class CreateTaskSchema(Schema):
    """建立任務驗證 (新任務一律從 TODO 開始)"""
    class Meta:
        unknown = EXCLUDE

    title = fields.Str(
        required=True,
        validate=validate.Length(min=3, max=200),
        error_messages={'required': 'Task title is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    project_id = fields.Int(required=True)
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES), load_default='MEDIUM')
    due_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    assignee_id = fields.Int(allow_none=True)


class UpdateTaskSchema(Schema):
    """更新任務驗證"""
    title = fields.Str(validate=validate.Length(min=3, max=200))
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES))
    due_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    assignee_id = fields.Int(allow_none=True)


class TaskStatusSchema(Schema):
    status = fields.Str(required=True, validate=validate.OneOf(TASK_STATUSES))


class TaskFilterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    project_id = fields.Int()
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES))
    assignee_id = fields.Int()
    search = fields.Str(validate=validate.Length(max=100))


class CreateCommentSchema(Schema):
    """留言驗證,去掉前後空白後不能是空的"""
    content = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=5000, error='Comment content is required'),
        error_messages={'required': 'Comment content is required'}
    )

    @pre_load
    def strip_content(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('content'), str):
            data = dict(data, content=data['content'].strip())
        return data

# ============================================
# 輔助函數
# ============================================

def get_workflow():
    return TaskWorkflow(strict=current_app.config.get('STRICT_TASK_TRANSITIONS', False))


def _display_name(user):
    return f'{user.first_name} {user.last_name}'


def notify_task_events(task, actor, assigned=False, completed=False):
    """
    任務指派 / 完成時通知相關的人 (不通知操作者自己)

    - assigned: 通知新的負責人
    - completed: 通知專案 owner 與負責人
    """
    if assigned and task.assignee_id:
        notify(
            [task.assignee_id],
            'task_assigned',
            f'{_display_name(actor)} assigned a task to you',
            f'Task: {task.title}',
            exclude_user_id=actor.id
        )

    if completed:
        notify(
            [task.project.owner_id, task.assignee_id],
            'task_completed',
            f'{_display_name(actor)} completed a task',
            f'Task: {task.title}',
            exclude_user_id=actor.id
        )

# ============================================
# 查詢任務列表
# ============================================

@tasks_bp.route('', methods=['GET'])
@jwt_required()
def get_tasks():
    """
    查詢我看得到的所有任務

    篩選 (project_id, status, priority, assignee_id, search) 只會縮小結果,
    排序: 狀態流程順序 -> 優先級高到低 -> 期限早到晚 (沒有期限的排最後)
    """
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    filters = load_or_fail(TaskFilterSchema, request.args.to_dict())
    tasks = AccessPolicy(db.session).visible_tasks(current_user.id, **filters).all()

    comment_counts = {}
    if tasks:
        comment_counts = dict(db.session.query(
            Comment.task_id,
            func.count(Comment.id)
        ).filter(
            Comment.task_id.in_([t.id for t in tasks])
        ).group_by(Comment.task_id).all())

    return jsonify({
        'success': True,
        'data': [task_dict(t, comment_count=comment_counts.get(t.id, 0)) for t in tasks]
    }), 200

# ============================================
# 建立任務
# ============================================

@tasks_bp.route('', methods=['POST'])
@jwt_required()
def create_task():
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    result = load_or_fail(CreateTaskSchema, request.get_json(silent=True))

    policy = AccessPolicy(db.session)
    project = policy.get_project(current_user.id, result['project_id'])

    # 指派對象不在專案裡是輸入錯誤,不是 not found
    policy.check_assignee(project.id, result.get('assignee_id'))

    task = Task(
        title=result['title'],
        description=result.get('description'),
        project_id=project.id,
        priority=result['priority'],
        due_date=result.get('due_date'),
        assignee_id=result.get('assignee_id')
    )
    db.session.add(task)
    db.session.commit()

    logger.info(f"Task created: {task.title} in project {project.id} by user {current_user.email}")

    notify_task_events(task, current_user, assigned=True)

    return jsonify({
        'success': True,
        'message': 'Task created successfully',
        'data': task_dict(task)
    }), 201

# ============================================
# 查詢單一任務
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['GET'])
@jwt_required()
def get_task(task_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    task = AccessPolicy(db.session).get_task(current_user.id, task_id)

    return jsonify({'success': True, 'data': task_dict(task, with_comments=True)}), 200

# ============================================
# 更新任務
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['PUT', 'PATCH'])
@jwt_required()
def update_task(task_id):
    """
    更新任務

    專案的任何成員 (含 owner) 都可以修改,沒有負責人限定
    """
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    policy = AccessPolicy(db.session)
    task = policy.get_task(current_user.id, task_id)
    result = load_or_fail(UpdateTaskSchema, request.get_json(silent=True))

    workflow = get_workflow()
    reassigned = 'assignee_id' in result and result['assignee_id'] != task.assignee_id

    # 先全部檢查完再修改,避免檢查失敗時留下改到一半的 task
    if reassigned:
        policy.check_assignee(task.project_id, result['assignee_id'])
    if 'status' in result:
        workflow.check_transition(task.status, result['status'])

    changes = {}

    if reassigned:
        changes['assignee_id'] = {'old': task.assignee_id, 'new': result['assignee_id']}
        task.assignee_id = result['assignee_id']

    if 'status' in result:
        old_status = task.status
        if workflow.apply(task, result['status']):
            changes['status'] = {'old': old_status, 'new': task.status}

    for field in ['title', 'description', 'priority', 'due_date']:
        if field in result:
            old_value = getattr(task, field)
            new_value = result[field]
            if old_value != new_value:
                changes[field] = {'old': str(old_value), 'new': str(new_value)}
                setattr(task, field, new_value)

    if changes:
        db.session.commit()
        logger.info(f"Task {task_id} updated by user {current_user.email}: {list(changes)}")

        notify_task_events(
            task,
            current_user,
            assigned='assignee_id' in changes,
            completed=changes.get('status', {}).get('new') == 'DONE'
        )

    return jsonify({
        'success': True,
        'message': 'Task updated successfully' if changes else 'No changes to update',
        'data': task_dict(task),
        'changes': changes
    }), 200


@tasks_bp.route('/<int:task_id>/status', methods=['PATCH'])
@jwt_required()
def update_task_status(task_id):
    """只改狀態 (預設允許任何狀態直接跳到任何狀態)"""
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    task = AccessPolicy(db.session).get_task(current_user.id, task_id)
    result = load_or_fail(TaskStatusSchema, request.get_json(silent=True))

    old_status = task.status
    if get_workflow().apply(task, result['status']):
        db.session.commit()
        logger.info(f"Task {task_id} status {old_status} -> {task.status} by user {current_user.email}")
        notify_task_events(task, current_user, completed=task.status == 'DONE')

    return jsonify({
        'success': True,
        'message': 'Task status updated successfully',
        'data': task_dict(task)
    }), 200

# ============================================
# 刪除任務
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@jwt_required()
def delete_task(task_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    task = AccessPolicy(db.session).get_task(current_user.id, task_id)
    task_title = task.title

    # cascade 會自動刪除留言
    db.session.delete(task)
    db.session.commit()

    logger.info(f"Task deleted: {task_title} by user {current_user.email}")

    return jsonify({'success': True, 'message': 'Task deleted successfully'}), 200

# ============================================
# 任務留言
# ============================================

@tasks_bp.route('/<int:task_id>/comments', methods=['GET'])
@jwt_required()
def get_task_comments(task_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    comments = AccessPolicy(db.session).visible_comments(current_user.id, task_id).all()

    return jsonify({'success': True, 'data': [comment_dict(c) for c in comments]}), 200


@tasks_bp.route('/<int:task_id>/comments', methods=['POST'])
@jwt_required()
def create_task_comment(task_id):
    """專案的任何參與者都可以留言"""
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    task = AccessPolicy(db.session).get_task(current_user.id, task_id)
    result = load_or_fail(CreateCommentSchema, request.get_json(silent=True))

    comment = Comment(task_id=task.id, author_id=current_user.id, content=result['content'])
    db.session.add(comment)
    db.session.commit()

    logger.info(f"Comment added to task {task_id} by user {current_user.email}")

    return jsonify({
        'success': True,
        'message': 'Comment added successfully',
        'data': comment_dict(comment)
    }), 201
