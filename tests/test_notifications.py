import pytest

from models import db, Notification
from notifications import notify


@pytest.fixture
def team(register_user, create_project, add_member):
    owner = register_user('Olive', 'Owner', 'o@example.com')
    member = register_user('Mia', 'Member', 'm@example.com')

    project = create_project(owner, 'Redesign')
    add_member(owner, project['id'], member)

    return {'owner': owner, 'member': member, 'project': project}


def notifications_for(client, user, query=''):
    response = client.get(f'/api/notifications{query}', headers=user['headers'])
    assert response.status_code == 200
    return response.get_json()


def test_member_added_notification(client, team):
    body = notifications_for(client, team['member'])

    assert [n['type'] for n in body['data']] == ['member_added']
    assert body['unread_count'] == 1
    assert notifications_for(client, team['owner'])['data'] == []


def test_assignment_notifies_assignee_only(client, team, create_task):
    create_task(team['owner'], team['project']['id'], assignee_id=team['member']['id'])
    create_task(team['owner'], team['project']['id'], title='Self assigned',
                assignee_id=team['owner']['id'])

    member_types = [n['type'] for n in notifications_for(client, team['member'])['data']]
    assert member_types.count('task_assigned') == 1
    assert notifications_for(client, team['owner'])['data'] == []


def test_completion_notifies_owner_and_assignee(client, team, create_task):
    task = create_task(team['owner'], team['project']['id'], assignee_id=team['owner']['id'])

    client.patch(f"/api/tasks/{task['id']}/status", json={'status': 'DONE'},
                 headers=team['member']['headers'])

    owner_types = [n['type'] for n in notifications_for(client, team['owner'])['data']]
    member_types = [n['type'] for n in notifications_for(client, team['member'])['data']]

    assert owner_types == ['task_completed']
    assert 'task_completed' not in member_types


def test_filter_and_mark_read(client, team):
    notification = notifications_for(client, team['member'], '?type=member_added')['data'][0]

    response = client.patch(f"/api/notifications/{notification['id']}/read",
                            headers=team['member']['headers'])

    assert response.status_code == 200
    assert notifications_for(client, team['member'], '?unread_only=true')['data'] == []
    assert notifications_for(client, team['member'])['unread_count'] == 0


def test_other_users_notification_is_not_found(client, team):
    notification = notifications_for(client, team['member'])['data'][0]

    read = client.patch(f"/api/notifications/{notification['id']}/read", headers=team['owner']['headers'])
    delete = client.delete(f"/api/notifications/{notification['id']}", headers=team['owner']['headers'])

    assert read.status_code == 404
    assert delete.status_code == 404
    assert read.get_json()['message'] == 'Notification not found'


def test_read_all_and_delete(client, team, create_task):
    create_task(team['owner'], team['project']['id'], assignee_id=team['member']['id'])

    response = client.patch('/api/notifications/read-all', headers=team['member']['headers'])
    assert response.get_json()['data']['updated'] == 2

    notification = notifications_for(client, team['member'])['data'][0]
    deleted = client.delete(f"/api/notifications/{notification['id']}", headers=team['member']['headers'])

    assert deleted.status_code == 200
    assert len(notifications_for(client, team['member'])['data']) == 1


def test_notify_skips_actor_and_empty_ids(app, team):
    with app.app_context():
        created = notify(
            [team['owner']['id'], None, team['member']['id'], team['member']['id']],
            'task_completed', 'Done', 'Task: x',
            exclude_user_id=team['owner']['id']
        )

        assert [n.user_id for n in created] == [team['member']['id']]
        assert notify([team['owner']['id']], 'task_completed', 'Done', 'Task: x',
                      exclude_user_id=team['owner']['id']) == []
        assert db.session.query(Notification).filter_by(type='task_completed').count() == 1
