"""
存取權限判斷 (Access Predicate Engine)

所有 Project / Task / Comment 的查詢都透過這裡建立 WHERE 條件,
避免每個 route 各自重寫 "owner 或 member" 的判斷而規則漂移。

規則:
1. 看得到專案 = 專案 owner 或 ProjectMember 有這個使用者
2. 修改專案 (更新、刪除、新增/移除成員) = 只有 owner
3. 看得到任務 / 修改任務 / 留言 = 看得到任務所屬專案
4. 指派對象也必須看得到該專案,否則是輸入錯誤 (不是 not found)
5. 篩選條件一律用 AND 疊加在可見條件上,只會縮小結果

不存在與沒有權限一律丟 NotFound,不區分。
"""
from sqlalchemy import and_, case, or_, select
import logging

from errors import NotFound, ValidationFailed
from models import Comment, Project, ProjectMember, Task
from workflow import TASK_PRIORITIES, TASK_STATUSES

logger = logging.getLogger(__name__)

# ============================================
# Predicate 建構函數
# ============================================

def project_visibility(user_id):
    """Projects the user owns or is a member of."""
    return or_(
        Project.owner_id == user_id,
        Project.members.any(ProjectMember.user_id == user_id)
    )


def project_ownership(user_id):
    return Project.owner_id == user_id


def task_visibility(user_id):
    """Tasks whose project passes ``project_visibility``."""
    return Task.project_id.in_(
        select(Project.id).where(project_visibility(user_id))
    )


def comment_visibility(user_id):
    return Comment.task_id.in_(
        select(Task.id).where(task_visibility(user_id))
    )


def project_filters(status=None, search=None):
    clauses = []
    if status:
        clauses.append(Project.status == status)
    if search:
        clauses.append(or_(
            Project.name.icontains(search, autoescape=True),
            Project.description.icontains(search, autoescape=True)
        ))
    return clauses


def task_filters(project_id=None, status=None, priority=None, assignee_id=None, search=None):
    clauses = []
    if project_id is not None:
        clauses.append(Task.project_id == project_id)
    if status:
        clauses.append(Task.status == status)
    if priority:
        clauses.append(Task.priority == priority)
    if assignee_id is not None:
        clauses.append(Task.assignee_id == assignee_id)
    if search:
        clauses.append(or_(
            Task.title.icontains(search, autoescape=True),
            Task.description.icontains(search, autoescape=True)
        ))
    return clauses


# 狀態依流程順序 (不是字母順序),優先級由高到低,沒有期限的排最後
TASK_ORDERING = (
    case({status: rank for rank, status in enumerate(TASK_STATUSES)}, value=Task.status),
    case({priority: rank for rank, priority in enumerate(TASK_PRIORITIES)}, value=Task.priority).desc(),
    Task.due_date.is_(None),
    Task.due_date.asc(),
    Task.id.asc(),
)

PROJECT_ORDERING = (Project.created_at.desc(), Project.id.desc())


# ============================================
# AccessPolicy
# ============================================

class AccessPolicy:
    """
    對單一 session 執行權限判斷

    session 由呼叫端傳入 (route 用 db.session,測試可以換成任何 session),
    本身不保存狀態,每次呼叫都是單純的查詢。
    """

    def __init__(self, session):
        self.session = session

    # ---------- 專案 ----------

    def visible_projects(self, user_id, status=None, search=None):
        return self.session.query(Project).filter(
            and_(project_visibility(user_id), *project_filters(status, search))
        ).order_by(*PROJECT_ORDERING)

    def can_see_project(self, user_id, project_id):
        if user_id is None:
            return False
        return self.session.query(
            self.session.query(Project.id).filter(
                Project.id == project_id,
                project_visibility(user_id)
            ).exists()
        ).scalar()

    def get_project(self, user_id, project_id):
        project = self.session.query(Project).filter(
            Project.id == project_id,
            project_visibility(user_id)
        ).first()

        if not project:
            raise NotFound('Project')
        return project

    def get_owned_project(self, user_id, project_id):
        """Project the user may mutate; members get the same NotFound as strangers."""
        project = self.session.query(Project).filter(
            Project.id == project_id,
            project_ownership(user_id)
        ).first()

        if not project:
            raise NotFound('Project')
        return project

    # ---------- 成員 ----------

    def ensure_not_member(self, project, user_id):
        already = project.owner_id == user_id or self.session.query(
            self.session.query(ProjectMember.id).filter_by(
                project_id=project.id,
                user_id=user_id
            ).exists()
        ).scalar()

        if already:
            raise ValidationFailed(
                {'user_id': ['User is already a member of this project']},
                message='User is already a member of this project'
            )

    def get_membership(self, user_id, project_id, member_id):
        """Membership row addressed by id, only through a project the user owns."""
        project = self.get_owned_project(user_id, project_id)

        member = self.session.query(ProjectMember).filter_by(
            id=member_id,
            project_id=project.id
        ).first()

        if not member:
            raise NotFound('Member')
        return member

    # ---------- 任務 ----------

    def visible_tasks(self, user_id, **filters):
        return self.session.query(Task).filter(
            and_(task_visibility(user_id), *task_filters(**filters))
        ).order_by(*TASK_ORDERING)

    def get_task(self, user_id, task_id):
        task = self.session.query(Task).filter(
            Task.id == task_id,
            task_visibility(user_id)
        ).first()

        if not task:
            raise NotFound('Task')
        return task

    def check_assignee(self, project_id, assignee_id):
        """
        指派對象必須是專案 owner 或成員

        這是輸入錯誤而不是權限錯誤:呼叫者已經看得到專案,錯的是指派對象。
        """
        if assignee_id is None:
            return

        if not self.can_see_project(assignee_id, project_id):
            logger.info(f"Rejected assignee {assignee_id} for project {project_id}")
            raise ValidationFailed(
                {'assignee_id': ['Assignee does not have access to this project']},
                message='Assignee does not have access to this project'
            )

    # ---------- 留言 ----------

    def visible_comments(self, user_id, task_id):
        task = self.get_task(user_id, task_id)
        return self.session.query(Comment).filter(
            Comment.task_id == task.id,
            comment_visibility(user_id)
        ).order_by(Comment.created_at.desc(), Comment.id.desc())
