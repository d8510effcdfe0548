from flask import Blueprint
from flask_jwt_extended import jwt_required
from sqlalchemy import func, case, or_
from marshmallow import Schema, fields, validate
from models import db, Category, Task, User
from errors import NotFoundError, PermissionDeniedError
from common import (
    ServiceResponse, handle_service_response, service_failure,
    load_json_body, load_query_args, current_user_id, isoformat
)
import logging

categories_bp = Blueprint('categories', __name__)
logger = logging.getLogger(__name__)

HEX_COLOR = validate.Regexp(r'^#[0-9A-Fa-f]{6}$', error='Color must be a valid hex color')

# ============================================
# Input Validation Schemas
# ============================================

class CreateCategorySchema(Schema):
    """建立分類驗證"""
    name = fields.Str(required=True, validate=validate.Length(min=1, max=100, error='Name is required'))
    color = fields.Str(validate=HEX_COLOR, load_default='#3B82F6')
    description = fields.Str(allow_none=True)
    is_global = fields.Bool(data_key='isGlobal', load_default=False)

class UpdateCategorySchema(Schema):
    name = fields.Str(validate=validate.Length(min=1, max=100, error='Name is required'))
    color = fields.Str(validate=HEX_COLOR)
    description = fields.Str(allow_none=True)

class GetCategoriesQuerySchema(Schema):
    user_id = fields.Int(data_key='userId')
    include_global = fields.Bool(data_key='includeGlobal', load_default=True)
    search = fields.Str()

# ============================================
# 序列化
# ============================================

def serialize_category(category, task_count=None, completed_task_count=None):
    data = {
        'id': category.id,
        'name': category.name,
        'color': category.color,
        'description': category.description,
        'userId': category.user_id,
        'isGlobal': category.is_global,
        'createdAt': isoformat(category.created_at)
    }
    if task_count is not None:
        data['taskCount'] = task_count
        data['completedTaskCount'] = int(completed_task_count or 0)
    return data

# ============================================
# Repository
# ============================================

class CategoryRepository:

    def _with_counts(self):
        """分類 + 任務數量 (outer join,沒有任務的分類也會出現)"""
        return db.session.query(
            Category,
            func.count(Task.id).label('task_count'),
            func.sum(case((Task.completed.is_(True), 1), else_=0)).label('completed_task_count')
        ).outerjoin(Task, Task.category_id == Category.id).group_by(Category.id)

    def create(self, category_data, user_id):
        category = Category(
            name=category_data['name'],
            color=category_data.get('color', '#3B82F6'),
            description=category_data.get('description'),
            user_id=None if category_data.get('is_global') else user_id
        )
        db.session.add(category)
        db.session.commit()
        return category

    def find_many(self, query):
        categories = self._with_counts()

        if query.get('search'):
            pattern = f"%{query['search']}%"
            categories = categories.filter(or_(
                Category.name.ilike(pattern),
                Category.description.ilike(pattern)
            ))

        user_id = query.get('user_id')
        include_global = query.get('include_global', True)
        if user_id and include_global:
            categories = categories.filter(or_(Category.user_id == user_id, Category.user_id.is_(None)))
        elif user_id:
            categories = categories.filter(Category.user_id == user_id)
        elif include_global:
            categories = categories.filter(Category.user_id.is_(None))

        return categories.order_by(Category.created_at.desc(), Category.id.desc()).all()

    def find_by_id(self, category_id):
        return db.session.get(Category, category_id)

    def find_with_counts(self, category_id):
        return self._with_counts().filter(Category.id == category_id).first()

    def update(self, category, update_data):
        for field in ['name', 'color', 'description']:
            if field in update_data:
                setattr(category, field, update_data[field])
        db.session.commit()
        return category

    def delete(self, category_id):
        """刪除分類,原本屬於這個分類的任務保留但清空 category"""
        Task.query.filter_by(category_id=category_id).update(
            {'category_id': None}, synchronize_session=False
        )
        Category.query.filter_by(id=category_id).delete(synchronize_session=False)
        db.session.commit()

    def get_global_categories(self):
        return Category.query.filter(Category.user_id.is_(None)).order_by(Category.name).all()

    def get_user_categories(self, user_id):
        return self._with_counts().filter(Category.user_id == user_id).order_by(Category.name).all()

    def get_user_role(self, user_id):
        user = db.session.get(User, user_id)
        return user.role if user else None

# ============================================
# Service
# ============================================

class CategoryService:

    def __init__(self, repository=None):
        self.category_repository = repository or CategoryRepository()

    def _is_admin(self, user_id):
        return self.category_repository.get_user_role(user_id) == 'admin'

    def _check_can_modify(self, category, user_id, action):
        """全域分類只有 admin 能改,個人分類只有擁有者能改"""
        if category.is_global:
            if not self._is_admin(user_id):
                raise PermissionDeniedError(f'Only admins can {action} global categories')
        elif category.user_id != user_id:
            raise PermissionDeniedError(f'You can only {action} your own categories')

    def create_category(self, category_data, user_id):
        try:
            if category_data.get('is_global') and not self._is_admin(user_id):
                raise PermissionDeniedError('Only admins can create global categories')

            category = self.category_repository.create(category_data, user_id)
            logger.info(f"Category created: {category.name} by user {user_id}")
            return ServiceResponse.success('Category created successfully', serialize_category(category, 0, 0), 201)
        except Exception as e:
            return service_failure(e, 'Error creating category', 'Failed to create category')

    def get_all_categories(self, query):
        try:
            rows = self.category_repository.find_many(query)
            return ServiceResponse.success(
                'Categories retrieved successfully',
                [serialize_category(c, count, completed) for c, count, completed in rows]
            )
        except Exception as e:
            return service_failure(e, 'Error retrieving categories', 'Failed to retrieve categories')

    def get_category_by_id(self, category_id):
        try:
            row = self.category_repository.find_with_counts(category_id)
            if not row:
                return ServiceResponse.failure('Category not found', None, 404)
            category, count, completed = row
            return ServiceResponse.success('Category retrieved successfully', serialize_category(category, count, completed))
        except Exception as e:
            return service_failure(e, 'Error retrieving category', 'Failed to retrieve category')

    def update_category(self, category_id, update_data, user_id):
        try:
            category = self.category_repository.find_by_id(category_id)
            if not category:
                raise NotFoundError('Category not found')
            self._check_can_modify(category, user_id, 'update')

            category = self.category_repository.update(category, update_data)
            return ServiceResponse.success('Category updated successfully', serialize_category(category))
        except Exception as e:
            return service_failure(e, 'Error updating category', 'Failed to update category')

    def delete_category(self, category_id, user_id):
        try:
            category = self.category_repository.find_by_id(category_id)
            if not category:
                raise NotFoundError('Category not found')
            self._check_can_modify(category, user_id, 'delete')

            self.category_repository.delete(category_id)
            logger.info(f"Category {category_id} deleted by user {user_id}")
            return ServiceResponse.success('Category deleted successfully', None)
        except Exception as e:
            return service_failure(e, 'Error deleting category', 'Failed to delete category')

    def get_global_categories(self):
        try:
            categories = self.category_repository.get_global_categories()
            return ServiceResponse.success(
                'Global categories retrieved successfully', [serialize_category(c) for c in categories]
            )
        except Exception as e:
            return service_failure(e, 'Error retrieving global categories', 'Failed to retrieve global categories')

    def get_user_categories(self, user_id):
        try:
            rows = self.category_repository.get_user_categories(user_id)
            return ServiceResponse.success(
                'User categories retrieved successfully',
                [serialize_category(c, count, completed) for c, count, completed in rows]
            )
        except Exception as e:
            return service_failure(e, 'Error retrieving user categories', 'Failed to retrieve user categories')


category_service = CategoryService()

# ============================================
# Routes
# ============================================

@categories_bp.route('', methods=['POST'])
@jwt_required()
def create_category():
    result, error = load_json_body(CreateCategorySchema)
    if error:
        return error
    return handle_service_response(category_service.create_category(result, current_user_id()))


@categories_bp.route('', methods=['GET'])
@jwt_required()
def get_categories():
    query, error = load_query_args(GetCategoriesQuerySchema)
    if error:
        return error
    return handle_service_response(category_service.get_all_categories(query))


@categories_bp.route('/global', methods=['GET'])
@jwt_required()
def get_global_categories():
    return handle_service_response(category_service.get_global_categories())


@categories_bp.route('/my-categories', methods=['GET'])
@jwt_required()
def get_my_categories():
    return handle_service_response(category_service.get_user_categories(current_user_id()))


@categories_bp.route('/<int:category_id>', methods=['GET'])
@jwt_required()
def get_category(category_id):
    return handle_service_response(category_service.get_category_by_id(category_id))


@categories_bp.route('/<int:category_id>', methods=['PUT'])
@jwt_required()
def update_category(category_id):
    result, error = load_json_body(UpdateCategorySchema)
    if error:
        return error
    return handle_service_response(category_service.update_category(category_id, result, current_user_id()))


@categories_bp.route('/<int:category_id>', methods=['DELETE'])
@jwt_required()
def delete_category(category_id):
    """刪除分類 (任務保留)"""
    return handle_service_response(category_service.delete_category(category_id, current_user_id()))
