from types import SimpleNamespace
from unittest.mock import MagicMock
from errors import ConflictError, NotFoundError
from auth import AuthService
from projects import ProjectService
from categories import CategoryService
from tasks import TaskService


def member(role):
    return SimpleNamespace(role=role)


def test_auth_register_conflict_maps_to_409(app):
    repository = MagicMock()
    repository.register.side_effect = ConflictError('User already exists with this email')

    with app.app_context():
        result = AuthService(repository).register({'email': 'dup@example.com'})

    assert result.success is False
    assert result.status_code == 409
    assert result.message == 'User already exists with this email'


def test_unexpected_error_collapses_to_500(app):
    repository = MagicMock()
    repository.find_details.side_effect = RuntimeError('connection reset')

    with app.app_context():
        result = ProjectService(repository).get_project_by_id(1)

    assert result.status_code == 500
    assert result.message == 'Failed to retrieve project'
    assert 'connection reset' not in result.message


def test_project_update_requires_manager_role(app):
    repository = MagicMock()
    repository.get_member.return_value = member('member')

    with app.app_context():
        result = ProjectService(repository).update_project(1, {'name': 'x'}, user_id=2)

    assert result.status_code == 403
    repository.update.assert_not_called()


def test_project_delete_missing_project(app):
    repository = MagicMock()
    repository.find_by_id.return_value = None

    with app.app_context():
        result = ProjectService(repository).delete_project(1, user_id=2)

    assert result.status_code == 404
    assert result.message == 'Project not found'
    repository.delete.assert_not_called()


def test_admin_cannot_grant_owner_role(app):
    repository = MagicMock()
    repository.get_member.side_effect = [member('admin'), member('member')]

    with app.app_context():
        result = ProjectService(repository).update_member_role(1, 3, 'owner', user_id=2)

    assert result.status_code == 403
    assert result.message == 'Only owner can assign owner role'
    repository.update_member_role.assert_not_called()


def test_task_toggle_missing_task(app):
    repository = MagicMock()
    repository.find_by_id.return_value = None

    with app.app_context():
        result = TaskService(repository).toggle_task_complete(5, True, user_id=1)

    assert result.status_code == 404
    assert result.message == 'Task not found'


def test_task_delete_checks_project_role(app):
    repository = MagicMock()
    repository.find_by_id.return_value = SimpleNamespace(created_by_id=9, project_id=4, assigned_to_id=None)
    repository.get_member.return_value = member('member')

    with app.app_context():
        result = TaskService(repository).delete_task(5, user_id=1)

    assert result.status_code == 403
    repository.delete.assert_not_called()


def test_category_update_not_found(app):
    repository = MagicMock()
    repository.find_by_id.side_effect = NotFoundError('Category not found')

    with app.app_context():
        result = CategoryService(repository).update_category(7, {'name': 'x'}, user_id=1)

    assert result.status_code == 404
