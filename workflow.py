"""
任務與專案的狀態模型

任務狀態依序為 TODO -> IN_PROGRESS -> IN_REVIEW -> DONE。
預設不限制狀態轉換 (任何狀態都可以直接設成另一個狀態),
STRICT_TASK_TRANSITIONS 開啟時才只允許停留或前進一步。
專案狀態只能由 owner 明確更新,不會自動轉換。
"""
from datetime import datetime

from errors import ValidationFailed

TASK_STATUSES = ('TODO', 'IN_PROGRESS', 'IN_REVIEW', 'DONE')
TASK_PRIORITIES = ('LOW', 'MEDIUM', 'HIGH', 'URGENT')
PROJECT_STATUSES = ('ACTIVE', 'COMPLETED', 'ARCHIVED')
USER_ROLES = ('ADMIN', 'USER')

DEFAULT_MEMBER_ROLE = 'MEMBER'


def status_rank(status):
    return TASK_STATUSES.index(status)


def priority_rank(priority):
    return TASK_PRIORITIES.index(priority)


class TaskWorkflow:
    """Applies status changes to tasks under the configured transition policy."""

    def __init__(self, strict=False):
        self.strict = strict

    def allowed_targets(self, current):
        if not self.strict:
            return set(TASK_STATUSES)

        rank = status_rank(current)
        return set(TASK_STATUSES[rank:rank + 2])

    def check_transition(self, current, target):
        if target not in TASK_STATUSES:
            raise ValidationFailed({'status': [f'Must be one of: {", ".join(TASK_STATUSES)}.']})

        if target not in self.allowed_targets(current):
            raise ValidationFailed({
                'status': [f'Cannot move task from {current} to {target}.']
            })

    def apply(self, task, target):
        """
        套用狀態變更

        進入 DONE 時記錄 completed_at,離開 DONE 時清除。

        Returns:
            bool: 狀態是否真的有改變
        """
        current = task.status
        self.check_transition(current, target)

        if current == target:
            return False

        task.status = target
        if target == 'DONE':
            task.completed_at = datetime.utcnow()
        elif current == 'DONE':
            task.completed_at = None

        return True
