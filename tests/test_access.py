from datetime import datetime

import pytest

from access import AccessPolicy, task_visibility
from errors import NotFound, ValidationFailed
from models import db, Comment, Project, ProjectMember, Task, User


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


def make_user(email):
    user = User(email=email, first_name='Test', last_name='User', password_hash='not-a-hash')
    db.session.add(user)
    db.session.flush()
    return user


def make_project(owner, name='Redesign', members=()):
    project = Project(name=name, owner_id=owner.id)
    db.session.add(project)
    db.session.flush()
    for user in members:
        db.session.add(ProjectMember(project_id=project.id, user_id=user.id))
    db.session.flush()
    return project


def make_task(project, title='Task', **extra):
    task = Task(title=title, project_id=project.id, **extra)
    db.session.add(task)
    db.session.flush()
    return task


@pytest.fixture
def world(ctx):
    """owner O, member M, outsider X; O owns Redesign (M is a member) and X owns Other."""
    owner = make_user('owner@example.com')
    member = make_user('member@example.com')
    outsider = make_user('outsider@example.com')

    redesign = make_project(owner, 'Redesign', members=[member])
    other = make_project(outsider, 'Other')

    db.session.commit()
    return {
        'owner': owner,
        'member': member,
        'outsider': outsider,
        'redesign': redesign,
        'other': other,
        'policy': AccessPolicy(db.session)
    }


def test_visible_projects_owner_or_member_only(world):
    policy = world['policy']

    assert [p.id for p in policy.visible_projects(world['owner'].id)] == [world['redesign'].id]
    assert [p.id for p in policy.visible_projects(world['member'].id)] == [world['redesign'].id]
    assert [p.id for p in policy.visible_projects(world['outsider'].id)] == [world['other'].id]


def test_missing_and_unauthorized_project_look_the_same(world):
    policy = world['policy']

    with pytest.raises(NotFound) as unauthorized:
        policy.get_project(world['outsider'].id, world['redesign'].id)
    with pytest.raises(NotFound) as missing:
        policy.get_project(world['owner'].id, 99999)

    assert str(unauthorized.value) == str(missing.value) == 'Project not found'


def test_membership_does_not_grant_project_mutation(world):
    policy = world['policy']

    assert policy.get_owned_project(world['owner'].id, world['redesign'].id) is world['redesign']
    with pytest.raises(NotFound):
        policy.get_owned_project(world['member'].id, world['redesign'].id)


def test_can_see_project(world):
    policy = world['policy']
    redesign_id = world['redesign'].id

    assert policy.can_see_project(world['owner'].id, redesign_id)
    assert policy.can_see_project(world['member'].id, redesign_id)
    assert not policy.can_see_project(world['outsider'].id, redesign_id)
    assert not policy.can_see_project(None, redesign_id)


def test_task_visibility_follows_project(world):
    policy = world['policy']
    task = make_task(world['redesign'])
    db.session.commit()

    assert policy.get_task(world['member'].id, task.id) is task
    with pytest.raises(NotFound) as exc:
        policy.get_task(world['outsider'].id, task.id)
    assert str(exc.value) == 'Task not found'


def test_filters_never_widen_visibility(world):
    policy = world['policy']
    make_task(world['redesign'], 'Visible todo', status='TODO')
    make_task(world['redesign'], 'Visible done', status='DONE')
    hidden = make_task(world['other'], 'Hidden todo', status='TODO')
    db.session.commit()

    unfiltered = {t.id for t in policy.visible_tasks(world['member'].id)}
    for status in ('TODO', 'DONE', 'IN_REVIEW'):
        filtered = {t.id for t in policy.visible_tasks(world['member'].id, status=status)}
        assert filtered <= unfiltered
        assert hidden.id not in filtered

    # asking for another project's tasks explicitly still yields nothing
    assert policy.visible_tasks(world['member'].id, project_id=world['other'].id).all() == []

    visible_ids = {
        row.id for row in db.session.query(Task.id).filter(task_visibility(world['member'].id))
    }
    assert visible_ids == unfiltered


def test_task_ordering(world):
    policy = world['policy']
    project = world['redesign']

    done = make_task(project, 'done', status='DONE', priority='URGENT')
    low = make_task(project, 'low', status='TODO', priority='LOW', due_date=datetime(2026, 1, 1))
    urgent_undated = make_task(project, 'urgent undated', status='TODO', priority='URGENT')
    urgent_late = make_task(project, 'urgent late', status='TODO', priority='URGENT',
                            due_date=datetime(2026, 3, 1))
    urgent_early = make_task(project, 'urgent early', status='TODO', priority='URGENT',
                             due_date=datetime(2026, 2, 1))
    review = make_task(project, 'review', status='IN_REVIEW', priority='HIGH')
    progress = make_task(project, 'progress', status='IN_PROGRESS', priority='MEDIUM')
    db.session.commit()

    ordered = [t.id for t in policy.visible_tasks(world['owner'].id)]

    assert ordered == [
        urgent_early.id, urgent_late.id, urgent_undated.id, low.id,
        progress.id, review.id, done.id
    ]


def test_search_is_substring_and_escaped(world):
    policy = world['policy']
    make_task(world['redesign'], 'Fix login page')
    make_task(world['redesign'], 'Write 100% coverage')
    db.session.commit()

    assert [t.title for t in policy.visible_tasks(world['owner'].id, search='LOGIN')] == ['Fix login page']
    assert [t.title for t in policy.visible_tasks(world['owner'].id, search='%')] == ['Write 100% coverage']


def test_project_search_keeps_visibility(world):
    policy = world['policy']

    # "Other" belongs to the outsider; searching for it must not reveal it
    assert policy.visible_projects(world['owner'].id, search='Other').all() == []
    assert [p.name for p in policy.visible_projects(world['owner'].id, search='design')] == ['Redesign']


def test_check_assignee(world):
    policy = world['policy']
    project_id = world['redesign'].id

    policy.check_assignee(project_id, None)
    policy.check_assignee(project_id, world['owner'].id)
    policy.check_assignee(project_id, world['member'].id)

    with pytest.raises(ValidationFailed) as exc:
        policy.check_assignee(project_id, world['outsider'].id)
    assert 'assignee_id' in exc.value.errors


def test_ensure_not_member(world):
    policy = world['policy']
    project = world['redesign']

    policy.ensure_not_member(project, world['outsider'].id)

    for user in (world['member'], world['owner']):
        with pytest.raises(ValidationFailed) as exc:
            policy.ensure_not_member(project, user.id)
        assert exc.value.message == 'User is already a member of this project'


def test_membership_must_belong_to_addressed_project(world):
    policy = world['policy']
    redesign = world['redesign']
    other = world['other']

    member_row = ProjectMember.query.filter_by(project_id=redesign.id).one()
    assert policy.get_membership(world['owner'].id, redesign.id, member_row.id) is member_row

    foreign = ProjectMember(project_id=other.id, user_id=world['member'].id)
    db.session.add(foreign)
    db.session.commit()

    # owner of Redesign cannot reach a row of another project through their own project
    with pytest.raises(NotFound):
        policy.get_membership(world['owner'].id, redesign.id, foreign.id)
    with pytest.raises(NotFound):
        policy.get_membership(world['member'].id, redesign.id, member_row.id)


def test_comment_visibility(world):
    policy = world['policy']
    task = make_task(world['redesign'])
    db.session.add(Comment(task_id=task.id, author_id=world['member'].id, content='hello'))
    db.session.commit()

    assert [c.content for c in policy.visible_comments(world['owner'].id, task.id)] == ['hello']
    with pytest.raises(NotFound):
        policy.visible_comments(world['outsider'].id, task.id)
