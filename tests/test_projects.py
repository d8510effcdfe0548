from models import db, Project, ProjectMember, ProjectComment, Task, TaskComment, TaskAttachment


def add_member(client, project_id, user_id, headers, role='member'):
    return client.post(
        f'/projects/{project_id}/members',
        json={'members': [{'userId': user_id, 'role': role}]},
        headers=headers
    )


def test_create_project_makes_creator_owner(client, register, create_project):
    owner, headers = register('owner@example.com')
    bob, _ = register('bob@example.com')

    project = create_project(headers, name='Apollo', priority='high', memberIds=[bob['id']])

    assert project['name'] == 'Apollo'
    assert project['priority'] == 'high'
    assert project['ownerId'] == owner['id']
    assert project['owner']['id'] == owner['id']
    roles = {m['userId']: m['role'] for m in project['members']}
    assert roles == {owner['id']: 'owner', bob['id']: 'member'}
    assert project['tasksCount'] == 0


def test_create_project_with_unknown_member_creates_nothing(app, client, register):
    _, headers = register('owner@example.com')

    response = client.post('/projects', json={'name': 'Ghost', 'memberIds': [999]}, headers=headers)

    assert response.status_code == 404
    with app.app_context():
        assert Project.query.count() == 0
        assert ProjectMember.query.count() == 0


def test_create_project_validation(client, register):
    _, headers = register('owner@example.com')

    response = client.post('/projects', json={'priority': 'whenever'}, headers=headers)

    assert response.status_code == 400
    assert set(response.get_json()['data']) == {'name', 'priority'}


def test_list_projects_pagination_and_filters(client, register, create_project):
    _, headers = register('owner@example.com')
    for i in range(3):
        create_project(headers, name=f'Alpha {i}')
    create_project(headers, name='Beta', priority='urgent')

    page = client.get('/projects?limit=2&page=1', headers=headers).get_json()['data']
    urgent = client.get('/projects?priority=urgent', headers=headers).get_json()['data']
    search = client.get('/projects?search=alpha', headers=headers).get_json()['data']

    assert len(page['projects']) == 2
    assert page['pagination'] == {'page': 1, 'limit': 2, 'total': 4, 'totalPages': 2}
    assert [p['name'] for p in urgent['projects']] == ['Beta']
    assert search['pagination']['total'] == 3


def test_list_projects_limit_capped(client, register):
    _, headers = register('owner@example.com')

    response = client.get('/projects?limit=101', headers=headers)

    assert response.status_code == 400


def test_list_projects_by_member(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, _ = register('bob@example.com')
    create_project(owner_headers, name='With Bob', memberIds=[bob['id']])
    create_project(owner_headers, name='Without Bob')

    data = client.get(f"/projects?memberId={bob['id']}", headers=owner_headers).get_json()['data']

    assert [p['name'] for p in data['projects']] == ['With Bob']


def test_my_projects_include_member_role(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, bob_headers = register('bob@example.com')
    create_project(owner_headers, name='Shared', memberIds=[bob['id']])
    create_project(owner_headers, name='Private')

    mine = client.get('/projects/my-projects', headers=bob_headers).get_json()['data']

    assert [(p['name'], p['memberRole']) for p in mine] == [('Shared', 'member')]


def test_get_project_not_found(client, register):
    _, headers = register('owner@example.com')

    response = client.get('/projects/42', headers=headers)

    assert response.status_code == 404
    assert response.get_json()['message'] == 'Project not found'


def test_member_cannot_update_project_or_add_members(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, bob_headers = register('bob@example.com')
    carol, _ = register('carol@example.com')
    project = create_project(owner_headers, memberIds=[bob['id']])

    update = client.put(f"/projects/{project['id']}", json={'name': 'Hijacked'}, headers=bob_headers)
    add = add_member(client, project['id'], carol['id'], bob_headers)

    assert update.status_code == 403
    assert update.get_json()['message'] == 'Insufficient permissions'
    assert add.status_code == 403


def test_owner_updates_project(client, register, create_project):
    _, headers = register('owner@example.com')
    project = create_project(headers)

    response = client.put(
        f"/projects/{project['id']}",
        json={'status': 'completed', 'endDate': '2030-01-31T00:00:00Z'},
        headers=headers
    )

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['status'] == 'completed'
    assert data['endDate'] == '2030-01-31T00:00:00'


def test_admin_member_can_add_members(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, bob_headers = register('bob@example.com')
    carol, _ = register('carol@example.com')
    project = create_project(owner_headers)
    add_member(client, project['id'], bob['id'], owner_headers, role='admin')

    response = add_member(client, project['id'], carol['id'], bob_headers)

    assert response.status_code == 201
    assert response.get_json()['data'][0]['userId'] == carol['id']


def test_add_members_unknown_user_and_duplicate(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, _ = register('bob@example.com')
    project = create_project(owner_headers, memberIds=[bob['id']])

    unknown = add_member(client, project['id'], 999, owner_headers)
    duplicate = add_member(client, project['id'], bob['id'], owner_headers)

    assert unknown.status_code == 404
    assert duplicate.status_code == 409


def test_only_owner_deletes_project(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, bob_headers = register('bob@example.com')
    project = create_project(owner_headers)
    add_member(client, project['id'], bob['id'], owner_headers, role='admin')

    response = client.delete(f"/projects/{project['id']}", headers=bob_headers)

    assert response.status_code == 403
    assert response.get_json()['message'] == 'Only project owner can delete project'


def test_delete_project_cascades(app, client, register, create_project, create_task):
    owner, headers = register('owner@example.com')
    bob, _ = register('bob@example.com')
    project = create_project(headers, memberIds=[bob['id']])
    task = create_task(headers, projectId=project['id'])
    subtask = create_task(headers, title='Sub', projectId=project['id'], parentTaskId=task['id'])
    outside = create_task(headers, title='Personal child')
    with app.app_context():
        db.session.get(Task, outside['id']).parent_task_id = task['id']
        db.session.commit()
    client.post(f"/tasks/{task['id']}/comments", json={'content': 'hi'}, headers=headers)
    client.post(f"/tasks/{subtask['id']}/attachments",
                json={'fileName': 'a.txt', 'fileUrl': 'https://files.example.com/a.txt'}, headers=headers)
    client.post(f"/projects/{project['id']}/comments", json={'content': 'kickoff'}, headers=headers)

    response = client.delete(f"/projects/{project['id']}", headers=headers)

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Project, project['id']) is None
        assert ProjectMember.query.filter_by(project_id=project['id']).count() == 0
        assert ProjectComment.query.count() == 0
        assert Task.query.filter_by(project_id=project['id']).count() == 0
        assert TaskComment.query.count() == 0
        assert TaskAttachment.query.count() == 0
        assert db.session.get(Task, outside['id']).parent_task_id is None


def test_member_can_leave_but_cannot_remove_others(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, bob_headers = register('bob@example.com')
    carol, _ = register('carol@example.com')
    project = create_project(owner_headers, memberIds=[bob['id'], carol['id']])

    remove_other = client.delete(f"/projects/{project['id']}/members/{carol['id']}", headers=bob_headers)
    leave = client.delete(f"/projects/{project['id']}/members/{bob['id']}", headers=bob_headers)

    assert remove_other.status_code == 403
    assert leave.status_code == 200


def test_non_member_cannot_remove_members(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, _ = register('bob@example.com')
    _, outsider_headers = register('outsider@example.com')
    project = create_project(owner_headers, memberIds=[bob['id']])

    response = client.delete(f"/projects/{project['id']}/members/{bob['id']}", headers=outsider_headers)

    assert response.status_code == 403
    assert response.get_json()['message'] == 'User is not a project member'


def test_owner_cannot_be_removed_by_admin(client, register, create_project):
    owner, owner_headers = register('owner@example.com')
    bob, bob_headers = register('bob@example.com')
    project = create_project(owner_headers)
    add_member(client, project['id'], bob['id'], owner_headers, role='admin')

    response = client.delete(f"/projects/{project['id']}/members/{owner['id']}", headers=bob_headers)

    assert response.status_code == 403
    assert response.get_json()['message'] == 'Cannot remove project owner'


def test_update_member_role(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    bob, bob_headers = register('bob@example.com')
    carol, _ = register('carol@example.com')
    project = create_project(owner_headers, memberIds=[carol['id']])
    add_member(client, project['id'], bob['id'], owner_headers, role='admin')
    role_url = f"/projects/{project['id']}/members/{carol['id']}/role"

    promote = client.patch(role_url, json={'role': 'admin'}, headers=bob_headers)
    make_owner = client.patch(role_url, json={'role': 'owner'}, headers=bob_headers)
    missing = client.patch(f"/projects/{project['id']}/members/999/role", json={'role': 'member'},
                           headers=owner_headers)

    assert promote.status_code == 200
    assert promote.get_json()['data']['role'] == 'admin'
    assert make_owner.status_code == 403
    assert make_owner.get_json()['message'] == 'Only owner can assign owner role'
    assert missing.status_code == 404


def test_last_owner_cannot_step_down_or_leave(client, register, create_project):
    owner, owner_headers = register('owner@example.com')
    bob, _ = register('bob@example.com')
    project = create_project(owner_headers, memberIds=[bob['id']])
    role_url = f"/projects/{project['id']}/members/{owner['id']}/role"
    leave_url = f"/projects/{project['id']}/members/{owner['id']}"

    demote = client.patch(role_url, json={'role': 'admin'}, headers=owner_headers)
    leave = client.delete(leave_url, headers=owner_headers)

    assert demote.status_code == 400
    assert demote.get_json()['message'] == 'Project must have at least one owner'
    assert leave.status_code == 400

    promote_bob = client.patch(f"/projects/{project['id']}/members/{bob['id']}/role",
                               json={'role': 'owner'}, headers=owner_headers)
    assert promote_bob.status_code == 200
    assert client.patch(role_url, json={'role': 'admin'}, headers=owner_headers).status_code == 200


def test_project_stats(client, register, create_project, create_task):
    _, headers = register('owner@example.com')
    project = create_project(headers)
    create_task(headers, projectId=project['id'], status='in_progress')
    create_task(headers, projectId=project['id'], completed=True)
    create_task(headers, projectId=project['id'], dueDate='2000-01-01T00:00:00Z')

    response = client.get(f"/projects/{project['id']}/stats", headers=headers)

    assert response.status_code == 200
    stats = response.get_json()['data']
    assert stats['tasks'] == {
        'total': 3, 'pending': 1, 'inProgress': 1, 'completed': 1, 'cancelled': 0, 'overdue': 1
    }
    assert stats['members'] == 1
    assert stats['completionRate'] == 33.33


def test_project_comments(client, register, create_project):
    _, owner_headers = register('owner@example.com')
    _, outsider_headers = register('outsider@example.com')
    project = create_project(owner_headers)
    url = f"/projects/{project['id']}/comments"

    created = client.post(url, json={'content': 'Kickoff on Monday'}, headers=owner_headers)
    outsider = client.post(url, json={'content': 'Let me in'}, headers=outsider_headers)
    listed = client.get(url, headers=owner_headers)

    assert created.status_code == 201
    assert outsider.status_code == 403
    comments = listed.get_json()['data']
    assert [c['content'] for c in comments] == ['Kickoff on Monday']
    assert comments[0]['user']['name'] == 'Test User'

    comment_id = created.get_json()['data']['id']
    assert client.delete(f'{url}/{comment_id}', headers=outsider_headers).status_code == 403
    assert client.delete(f'{url}/{comment_id}', headers=owner_headers).status_code == 200
