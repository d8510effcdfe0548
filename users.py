from flask import Blueprint
from flask_jwt_extended import jwt_required
from sqlalchemy import or_
from marshmallow import Schema, fields, validate
from models import db, User, ProjectMember, Task, Category, utcnow
from errors import ConflictError, NotFoundError, PermissionDeniedError
from common import (
    ServiceResponse, handle_service_response, service_failure,
    load_json_body, load_query_args, current_user_id, serialize_user
)
from auth import hash_password, USER_ROLES
import logging

users_bp = Blueprint('users', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class CreateUserSchema(Schema):
    """建立使用者驗證"""
    first_name = fields.Str(required=True, data_key='firstName', validate=validate.Length(min=1, max=255))
    last_name = fields.Str(required=True, data_key='lastName', validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True)
    password = fields.Str(
        required=True,
        validate=validate.Length(min=8, error='Password must be at least 8 characters')
    )
    role = fields.Str(validate=validate.OneOf(USER_ROLES), load_default='member')
    avatar = fields.Url()

class UpdateUserSchema(Schema):
    """更新使用者驗證"""
    first_name = fields.Str(data_key='firstName', validate=validate.Length(min=1, max=255))
    last_name = fields.Str(data_key='lastName', validate=validate.Length(min=1, max=255))
    email = fields.Email()
    role = fields.Str(validate=validate.OneOf(USER_ROLES))
    avatar = fields.Url()
    is_active = fields.Bool(data_key='isActive')

class GetUsersQuerySchema(Schema):
    role = fields.Str(validate=validate.OneOf(USER_ROLES))
    search = fields.Str()

# ============================================
# Repository
# ============================================

class UserRepository:

    def find_by_email(self, email):
        return User.query.filter_by(email=email).first()

    def find_by_id(self, user_id):
        return db.session.get(User, user_id)

    def create(self, user_data):
        user = User(
            first_name=user_data['first_name'],
            last_name=user_data['last_name'],
            email=user_data['email'],
            password=hash_password(user_data['password']),
            role=user_data.get('role', 'member'),
            avatar=user_data.get('avatar')
        )
        db.session.add(user)
        db.session.commit()
        return user

    def find_many(self, query):
        users = User.query

        if query.get('role'):
            users = users.filter(User.role == query['role'])

        if query.get('search'):
            pattern = f"%{query['search']}%"
            users = users.filter(or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern)
            ))

        return users.order_by(User.created_at.desc()).all()

    def find_all(self):
        return User.query.filter_by(is_active=True).order_by(User.first_name, User.last_name).all()

    def find_profile_by_id(self, user_id):
        """使用者資料 + 統計"""
        user = db.session.get(User, user_id)
        if not user:
            return None

        projects_count = ProjectMember.query.filter_by(user_id=user_id).count()

        user_tasks = Task.query.filter(
            or_(Task.assigned_to_id == user_id, Task.created_by_id == user_id)
        )
        tasks_count = user_tasks.count()
        completed_tasks_count = user_tasks.filter(Task.completed.is_(True)).count()

        profile = serialize_user(user)
        profile.update({
            'projectsCount': projects_count,
            'tasksCount': tasks_count,
            'completedTasksCount': completed_tasks_count
        })
        return profile

    def update(self, user_id, update_data):
        user = db.session.get(User, user_id)
        if not user:
            return None

        for field in ['first_name', 'last_name', 'email', 'role', 'avatar', 'is_active']:
            if field in update_data:
                setattr(user, field, update_data[field])

        user.updated_at = utcnow()
        db.session.commit()
        return user

    def delete(self, user_id):
        """
        刪除使用者

        先移除成員資格、個人分類和任務指派,其他關聯交給資料庫約束
        """
        ProjectMember.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        Task.query.filter_by(assigned_to_id=user_id).update(
            {'assigned_to_id': None}, synchronize_session=False
        )

        personal_categories = db.select(Category.id).where(Category.user_id == user_id)
        Task.query.filter(Task.category_id.in_(personal_categories)).update(
            {'category_id': None}, synchronize_session=False
        )
        Category.query.filter_by(user_id=user_id).delete(synchronize_session=False)

        User.query.filter_by(id=user_id).delete(synchronize_session=False)
        db.session.commit()

# ============================================
# Service
# ============================================

class UserService:

    def __init__(self, repository=None):
        self.user_repository = repository or UserRepository()

    def _check_can_modify(self, target_id, actor_id, update_data=None):
        actor = self.user_repository.find_by_id(actor_id)
        is_admin = actor is not None and actor.role == 'admin'

        if target_id != actor_id and not is_admin:
            raise PermissionDeniedError('Insufficient permissions')

        # 只有 admin 可以改角色或停用帳號
        if update_data and not is_admin and ('role' in update_data or 'is_active' in update_data):
            raise PermissionDeniedError('Only admins can change role or account status')

    def create_user(self, user_data):
        try:
            if self.user_repository.find_by_email(user_data['email']):
                return ServiceResponse.failure('Email already exists', None, 409)

            user = self.user_repository.create(user_data)
            logger.info(f"User created: {user.email}")
            return ServiceResponse.success('User created successfully', serialize_user(user), 201)
        except Exception as e:
            return service_failure(e, 'Error creating user', 'Failed to create user')

    def get_all_users(self, query):
        try:
            users = self.user_repository.find_many(query)
            return ServiceResponse.success('Users retrieved successfully', [serialize_user(u) for u in users])
        except Exception as e:
            return service_failure(e, 'Error retrieving users', 'Failed to retrieve users')

    def get_user_by_id(self, user_id):
        try:
            user = self.user_repository.find_by_id(user_id)
            if not user:
                return ServiceResponse.failure('User not found', None, 404)
            return ServiceResponse.success('User retrieved successfully', serialize_user(user))
        except Exception as e:
            return service_failure(e, 'Error retrieving user', 'Failed to retrieve user')

    def get_user_profile(self, user_id):
        try:
            profile = self.user_repository.find_profile_by_id(user_id)
            if not profile:
                return ServiceResponse.failure('User not found', None, 404)
            return ServiceResponse.success('User profile retrieved successfully', profile)
        except Exception as e:
            return service_failure(e, 'Error retrieving user profile', 'Failed to retrieve user profile')

    def update_user(self, user_id, update_data, actor_id):
        try:
            self._check_can_modify(user_id, actor_id, update_data)

            if update_data.get('email'):
                existing = self.user_repository.find_by_email(update_data['email'])
                if existing and existing.id != user_id:
                    raise ConflictError('Email already exists')

            user = self.user_repository.update(user_id, update_data)
            if not user:
                raise NotFoundError('User not found')

            logger.info(f"User {user_id} updated by user {actor_id}")
            return ServiceResponse.success('User updated successfully', serialize_user(user))
        except Exception as e:
            return service_failure(e, 'Error updating user', 'Failed to update user')

    def delete_user(self, user_id, actor_id):
        try:
            self._check_can_modify(user_id, actor_id)

            if not self.user_repository.find_by_id(user_id):
                raise NotFoundError('User not found')

            self.user_repository.delete(user_id)
            logger.info(f"User {user_id} deleted by user {actor_id}")
            return ServiceResponse.success('User deleted successfully', None)
        except Exception as e:
            return service_failure(e, 'Error deleting user', 'Failed to delete user')

    def get_all_users_simple(self):
        try:
            users = self.user_repository.find_all()
            return ServiceResponse.success('Users retrieved successfully', [{
                'id': u.id,
                'name': u.full_name,
                'email': u.email
            } for u in users])
        except Exception as e:
            return service_failure(e, 'Error retrieving users', 'Failed to retrieve users')


user_service = UserService()

# ============================================
# Routes
# ============================================

@users_bp.route('', methods=['POST'])
@jwt_required()
def create_user():
    result, error = load_json_body(CreateUserSchema)
    if error:
        return error
    return handle_service_response(user_service.create_user(result))


@users_bp.route('', methods=['GET'])
@jwt_required()
def get_users():
    query, error = load_query_args(GetUsersQuerySchema)
    if error:
        return error
    return handle_service_response(user_service.get_all_users(query))


@users_bp.route('/simple', methods=['GET'])
@jwt_required()
def get_users_simple():
    """下拉選單用的精簡列表"""
    return handle_service_response(user_service.get_all_users_simple())


@users_bp.route('/me', methods=['GET'])
@jwt_required()
def get_my_profile():
    return handle_service_response(user_service.get_user_profile(current_user_id()))


@users_bp.route('/<int:user_id>', methods=['GET'])
@jwt_required()
def get_user(user_id):
    return handle_service_response(user_service.get_user_by_id(user_id))


@users_bp.route('/<int:user_id>/profile', methods=['GET'])
@jwt_required()
def get_user_profile(user_id):
    return handle_service_response(user_service.get_user_profile(user_id))


@users_bp.route('/<int:user_id>', methods=['PUT'])
@jwt_required()
def update_user(user_id):
    result, error = load_json_body(UpdateUserSchema)
    if error:
        return error
    return handle_service_response(user_service.update_user(user_id, result, current_user_id()))


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@jwt_required()
def delete_user(user_id):
    return handle_service_response(user_service.delete_user(user_id, current_user_id()))
