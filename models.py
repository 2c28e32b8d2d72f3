from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

from workflow import DEFAULT_MEMBER_ROLE

db = SQLAlchemy()

# ============================================
# 1. User 模型
# ============================================
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    avatar_url = db.Column(db.String(500))
    role = db.Column(db.String(20), nullable=False, default='USER')  # ADMIN, USER

    # 停用帳號 = 軟刪除,保留歷史紀錄
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 關聯
    owned_projects = db.relationship('Project', backref='owner', lazy=True)
    tasks_assigned = db.relationship('Task', backref='assignee', lazy=True)
    comments = db.relationship('Comment', backref='author', lazy=True)
    notifications = db.relationship('Notification', backref='user', lazy=True, cascade='all,delete-orphan')

# ============================================
# 2. Project 模型
# ============================================
class Project(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='ACTIVE')  # ACTIVE, COMPLETED, ARCHIVED
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 專案刪除時一併刪除成員與任務
    tasks = db.relationship('Task', backref='project', lazy=True, cascade='all,delete-orphan')
    members = db.relationship('ProjectMember', backref='project', lazy=True, cascade='all,delete-orphan')

    __table_args__ = (
        db.Index('idx_project_status', 'status'),
        db.Index('idx_project_owner', 'owner_id'),
    )

# ============================================
# 3. ProjectMember 模型
# ============================================
class ProjectMember(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False)
    role = db.Column(db.String(50), nullable=False, default=DEFAULT_MEMBER_ROLE)  # DEVELOPER, DESIGNER, LEAD ...
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref='project_memberships')

    # 同一個使用者在同一個專案只能出現一次 (併發新增時由資料庫擋下第二筆)
    __table_args__ = (
        db.UniqueConstraint('project_id', 'user_id', name='unique_project_member'),
    )

# ============================================
# 4. Task 模型
# ============================================
class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='TODO')  # TODO, IN_PROGRESS, IN_REVIEW, DONE
    priority = db.Column(db.String(20), nullable=False, default='MEDIUM')  # LOW, MEDIUM, HIGH, URGENT

    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False)
    assignee_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)

    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    comments = db.relationship('Comment', backref='task', lazy=True, cascade='all,delete-orphan',
                               order_by='Comment.created_at.desc()')

    __table_args__ = (
        db.Index('idx_task_project_status', 'project_id', 'status'),
        db.Index('idx_task_assignee_status', 'assignee_id', 'status'),
        db.Index('idx_task_due_date', 'due_date'),
    )

# ============================================
# 5. Comment 模型
# ============================================
class Comment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    task_id = db.Column(db.Integer, db.ForeignKey('task.id'), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

# ============================================
# 6. Notification 模型
# ============================================
class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    type = db.Column(db.String(50), nullable=False)  # task_assigned, task_completed, member_added
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
