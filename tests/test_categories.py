from models import db, Task


def create_category(client, headers, **payload):
    response = client.post('/categories', json=payload, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['data']


def test_create_personal_category(client, register):
    user, headers = register('alice@example.com')

    category = create_category(client, headers, name='Work')

    assert category['userId'] == user['id']
    assert category['isGlobal'] is False
    assert category['color'] == '#3B82F6'


def test_create_category_validates_color(client, register):
    _, headers = register('alice@example.com')

    response = client.post('/categories', json={'name': 'Bad', 'color': 'red'}, headers=headers)

    assert response.status_code == 400
    assert 'color' in response.get_json()['data']


def test_global_category_requires_admin(client, register):
    _, member_headers = register('member@example.com')
    _, admin_headers = register('admin@example.com', role='admin')

    denied = client.post('/categories', json={'name': 'Urgent', 'isGlobal': True}, headers=member_headers)
    created = create_category(client, admin_headers, name='Urgent', isGlobal=True)

    assert denied.status_code == 403
    assert created['isGlobal'] is True
    assert created['userId'] is None


def test_list_categories_with_counts(client, register, create_task):
    user, headers = register('alice@example.com')
    _, admin_headers = register('admin@example.com', role='admin')
    personal = create_category(client, headers, name='Home')
    create_category(client, admin_headers, name='Shared', isGlobal=True)
    create_task(headers, title='Laundry', categoryId=personal['id'])
    done = create_task(headers, title='Dishes', categoryId=personal['id'])
    client.patch(f"/tasks/{done['id']}/toggle-complete", json={'completed': True}, headers=headers)

    mine_and_global = client.get(f"/categories?userId={user['id']}", headers=headers).get_json()['data']
    mine_only = client.get(f"/categories?userId={user['id']}&includeGlobal=false", headers=headers).get_json()['data']
    global_only = client.get('/categories', headers=headers).get_json()['data']

    assert sorted(c['name'] for c in mine_and_global) == ['Home', 'Shared']
    assert [c['name'] for c in mine_only] == ['Home']
    assert mine_only[0]['taskCount'] == 2
    assert mine_only[0]['completedTaskCount'] == 1
    assert [c['name'] for c in global_only] == ['Shared']
    assert global_only[0]['taskCount'] == 0


def test_global_and_my_categories(client, register):
    _, headers = register('alice@example.com')
    _, admin_headers = register('admin@example.com', role='admin')
    create_category(client, admin_headers, name='Zeta', isGlobal=True)
    create_category(client, admin_headers, name='Alpha', isGlobal=True)
    create_category(client, headers, name='Mine')

    global_names = [c['name'] for c in client.get('/categories/global', headers=headers).get_json()['data']]
    my_names = [c['name'] for c in client.get('/categories/my-categories', headers=headers).get_json()['data']]

    assert global_names == ['Alpha', 'Zeta']
    assert my_names == ['Mine']


def test_get_category_not_found(client, register):
    _, headers = register('alice@example.com')

    response = client.get('/categories/999', headers=headers)

    assert response.status_code == 404
    assert response.get_json()['message'] == 'Category not found'


def test_update_category_permissions(client, register):
    _, alice_headers = register('alice@example.com')
    _, bob_headers = register('bob@example.com')
    _, admin_headers = register('admin@example.com', role='admin')
    personal = create_category(client, alice_headers, name='Alice stuff')
    shared = create_category(client, admin_headers, name='Shared', isGlobal=True)

    someone_else = client.put(f"/categories/{personal['id']}", json={'name': 'Bob stuff'}, headers=bob_headers)
    global_by_member = client.put(f"/categories/{shared['id']}", json={'name': 'Mine'}, headers=alice_headers)
    global_by_admin = client.put(f"/categories/{shared['id']}", json={'color': '#000000'}, headers=admin_headers)
    own = client.put(f"/categories/{personal['id']}", json={'name': 'Renamed'}, headers=alice_headers)

    assert someone_else.status_code == 403
    assert someone_else.get_json()['message'] == 'You can only update your own categories'
    assert global_by_member.status_code == 403
    assert global_by_member.get_json()['message'] == 'Only admins can update global categories'
    assert global_by_admin.status_code == 200
    assert global_by_admin.get_json()['data']['color'] == '#000000'
    assert own.get_json()['data']['name'] == 'Renamed'


def test_delete_category_keeps_tasks(app, client, register, create_task):
    _, alice_headers = register('alice@example.com')
    _, bob_headers = register('bob@example.com')
    category = create_category(client, alice_headers, name='Temp')
    task = create_task(alice_headers, categoryId=category['id'])

    denied = client.delete(f"/categories/{category['id']}", headers=bob_headers)
    deleted = client.delete(f"/categories/{category['id']}", headers=alice_headers)

    assert denied.status_code == 403
    assert denied.get_json()['message'] == 'You can only delete your own categories'
    assert deleted.status_code == 200
    assert client.get(f"/categories/{category['id']}", headers=alice_headers).status_code == 404
    with app.app_context():
        assert db.session.get(Task, task['id']).category_id is None
