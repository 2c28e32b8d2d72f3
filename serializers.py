"""Model -> JSON dict helpers shared by the blueprints."""


def _iso(value):
    return value.isoformat() if value else None


def user_brief(user):
    if user is None:
        return None
    return {
        'id': user.id,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'email': user.email,
        'avatar_url': user.avatar_url
    }


def user_detail(user):
    data = user_brief(user)
    data.update({
        'role': user.role,
        'is_active': user.is_active,
        'last_login': _iso(user.last_login),
        'created_at': _iso(user.created_at),
        'updated_at': _iso(user.updated_at)
    })
    return data


def member_dict(member):
    return {
        'id': member.id,
        'project_id': member.project_id,
        'role': member.role,
        'joined_at': _iso(member.joined_at),
        'user': user_brief(member.user)
    }


def project_dict(project, with_members=False, task_count=None):
    data = {
        'id': project.id,
        'name': project.name,
        'description': project.description,
        'status': project.status,
        'start_date': _iso(project.start_date),
        'end_date': _iso(project.end_date),
        'owner': user_brief(project.owner),
        'created_at': _iso(project.created_at),
        'updated_at': _iso(project.updated_at)
    }
    if with_members:
        data['members'] = [member_dict(m) for m in project.members]
    if task_count is not None:
        data['task_count'] = task_count
    return data


def comment_dict(comment):
    return {
        'id': comment.id,
        'content': comment.content,
        'task_id': comment.task_id,
        'author': user_brief(comment.author),
        'created_at': _iso(comment.created_at)
    }


def task_dict(task, with_comments=False, comment_count=None):
    data = {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'status': task.status,
        'priority': task.priority,
        'project': {
            'id': task.project.id,
            'name': task.project.name
        },
        'assignee': user_brief(task.assignee),
        'due_date': _iso(task.due_date),
        'completed_at': _iso(task.completed_at),
        'created_at': _iso(task.created_at),
        'updated_at': _iso(task.updated_at)
    }
    if with_comments:
        data['comments'] = [comment_dict(c) for c in task.comments]
    if comment_count is not None:
        data['comment_count'] = comment_count
    return data


def notification_dict(notification):
    return {
        'id': notification.id,
        'type': notification.type,
        'title': notification.title,
        'message': notification.message,
        'is_read': notification.is_read,
        'created_at': _iso(notification.created_at)
    }
