from flask import Blueprint
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import joinedload
from sqlalchemy import case, or_
from marshmallow import Schema, fields, validate
from models import (
    db, Task, Project, ProjectMember, Category, User, TaskComment, TaskAttachment, utcnow
)
from errors import BadRequestError, NotFoundError, PermissionDeniedError
from common import (
    ServiceResponse, handle_service_response, service_failure,
    load_json_body, load_query_args, current_user_id, isoformat, naive_utc, user_summary
)
from datetime import datetime, timedelta
import logging

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

TASK_STATUSES = ['pending', 'in_progress', 'completed', 'cancelled']
PRIORITIES = ['low', 'medium', 'high', 'urgent']
PRIORITY_RANK = {'low': 1, 'medium': 2, 'high': 3, 'urgent': 4}
SORT_COLUMNS = ['createdAt', 'dueDate', 'priority', 'title']

# ============================================
# Input Validation Schemas
# ============================================

class CreateTaskSchema(Schema):
    """建立任務驗證"""
    title = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Task title is required'}
    )
    description = fields.Str(validate=validate.Length(max=5000), allow_none=True)
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES), load_default='pending')
    priority = fields.Str(validate=validate.OneOf(PRIORITIES), load_default='medium')
    completed = fields.Bool(load_default=False)
    due_date = fields.DateTime(data_key='dueDate', allow_none=True)
    reminder_date = fields.DateTime(data_key='reminderDate', allow_none=True)
    estimated_hours = fields.Int(data_key='estimatedHours', validate=validate.Range(min=1), allow_none=True)
    actual_hours = fields.Int(data_key='actualHours', validate=validate.Range(min=1), allow_none=True)
    project_id = fields.Int(data_key='projectId', allow_none=True)
    category_id = fields.Int(data_key='categoryId', allow_none=True)
    assigned_to_id = fields.Int(data_key='assignedToId', allow_none=True)
    parent_task_id = fields.Int(data_key='parentTaskId', allow_none=True)

class UpdateTaskSchema(Schema):
    """更新任務驗證 (全部欄位選填)"""
    title = fields.Str(validate=validate.Length(min=1, max=255))
    description = fields.Str(validate=validate.Length(max=5000), allow_none=True)
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(PRIORITIES))
    completed = fields.Bool()
    due_date = fields.DateTime(data_key='dueDate', allow_none=True)
    reminder_date = fields.DateTime(data_key='reminderDate', allow_none=True)
    estimated_hours = fields.Int(data_key='estimatedHours', validate=validate.Range(min=1), allow_none=True)
    actual_hours = fields.Int(data_key='actualHours', validate=validate.Range(min=1), allow_none=True)
    category_id = fields.Int(data_key='categoryId', allow_none=True)
    assigned_to_id = fields.Int(data_key='assignedToId', allow_none=True)

class GetTasksQuerySchema(Schema):
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(PRIORITIES))
    completed = fields.Bool()
    project_id = fields.Int(data_key='projectId')
    category_id = fields.Int(data_key='categoryId')
    assigned_to_id = fields.Int(data_key='assignedToId')
    created_by_id = fields.Int(data_key='createdById')
    due_date = fields.Date(data_key='dueDate')
    search = fields.Str()
    include_subtasks = fields.Bool(data_key='includeSubtasks', load_default=True)
    sort_by = fields.Str(data_key='sortBy', validate=validate.OneOf(SORT_COLUMNS), load_default='createdAt')
    sort_order = fields.Str(data_key='sortOrder', validate=validate.OneOf(['asc', 'desc']), load_default='desc')

class MyTasksQuerySchema(Schema):
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(PRIORITIES))
    completed = fields.Bool()

class ToggleCompleteSchema(Schema):
    completed = fields.Bool(required=True)

class TaskCommentSchema(Schema):
    content = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=5000, error='Comment content is required')
    )

class TaskAttachmentSchema(Schema):
    file_name = fields.Str(required=True, data_key='fileName', validate=validate.Length(min=1, max=255))
    file_url = fields.Url(required=True, data_key='fileUrl')
    file_size = fields.Int(data_key='fileSize', validate=validate.Range(min=0), allow_none=True)
    mime_type = fields.Str(data_key='mimeType', validate=validate.Length(max=100), allow_none=True)

# ============================================
# 序列化
# ============================================

def serialize_task(task):
    return {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'status': task.status,
        'priority': task.priority,
        'completed': task.completed,
        'dueDate': isoformat(task.due_date),
        'reminderDate': isoformat(task.reminder_date),
        'estimatedHours': task.estimated_hours,
        'actualHours': task.actual_hours,
        'projectId': task.project_id,
        'categoryId': task.category_id,
        'assignedToId': task.assigned_to_id,
        'createdById': task.created_by_id,
        'parentTaskId': task.parent_task_id,
        'createdAt': isoformat(task.created_at),
        'updatedAt': isoformat(task.updated_at)
    }


def project_summary(project):
    if project is None:
        return None
    return {'id': project.id, 'name': project.name, 'status': project.status}


def category_summary(category):
    if category is None:
        return None
    return {'id': category.id, 'name': category.name, 'color': category.color}


def serialize_task_row(task):
    """列表用: 任務 + 專案/分類/負責人摘要"""
    row = serialize_task(task)
    row.update({
        'project': project_summary(task.project),
        'category': category_summary(task.category),
        'assignedTo': user_summary(task.assignee)
    })
    return row


def serialize_comment(comment):
    return {
        'id': comment.id,
        'content': comment.content,
        'taskId': comment.task_id,
        'userId': comment.user_id,
        'createdAt': isoformat(comment.created_at),
        'updatedAt': isoformat(comment.updated_at),
        'user': user_summary(comment.user, with_email=False)
    }


def serialize_attachment(attachment):
    return {
        'id': attachment.id,
        'fileName': attachment.file_name,
        'fileUrl': attachment.file_url,
        'fileSize': attachment.file_size,
        'mimeType': attachment.mime_type,
        'taskId': attachment.task_id,
        'uploadedById': attachment.uploaded_by_id,
        'createdAt': isoformat(attachment.created_at),
        'uploadedBy': user_summary(attachment.uploader, with_email=False)
    }


def serialize_task_details(task):
    details = serialize_task_row(task)
    parent = task.parent_task
    details.update({
        'createdBy': user_summary(task.creator),
        'parentTask': {'id': parent.id, 'title': parent.title, 'status': parent.status} if parent else None,
        'subtasks': [{
            'id': sub.id,
            'title': sub.title,
            'status': sub.status,
            'completed': sub.completed,
            'assignedTo': user_summary(sub.assignee, with_email=False)
        } for sub in task.subtasks],
        'comments': [
            serialize_comment(c) for c in sorted(task.comments, key=lambda c: (c.created_at, c.id), reverse=True)
        ],
        'attachments': [
            serialize_attachment(a) for a in sorted(task.attachments, key=lambda a: (a.created_at, a.id), reverse=True)
        ]
    })
    return details


def apply_completion(task, update_data):
    """
    讓 completed 和 status 保持一致

    同時給兩個欄位時以 status 為準
    """
    if 'status' in update_data:
        task.status = update_data['status']
        task.completed = update_data['status'] == 'completed'
    elif 'completed' in update_data:
        task.completed = update_data['completed']
        if task.completed:
            task.status = 'completed'
        elif task.status == 'completed':
            task.status = 'pending'

# ============================================
# Repository
# ============================================

class TaskRepository:

    def _list_query(self):
        return Task.query.options(
            joinedload(Task.project),
            joinedload(Task.category),
            joinedload(Task.assignee)
        )

    def check_references(self, task_data):
        """外鍵目標必須存在"""
        if task_data.get('project_id') and not db.session.get(Project, task_data['project_id']):
            raise NotFoundError('Project not found')
        if task_data.get('category_id') and not db.session.get(Category, task_data['category_id']):
            raise NotFoundError('Category not found')
        if task_data.get('assigned_to_id') and not db.session.get(User, task_data['assigned_to_id']):
            raise NotFoundError('User not found')
        if task_data.get('parent_task_id') and not db.session.get(Task, task_data['parent_task_id']):
            raise NotFoundError('Parent task not found')

    def create(self, task_data, created_by_id):
        self.check_references(task_data)

        task = Task(
            title=task_data['title'],
            description=task_data.get('description'),
            priority=task_data.get('priority', 'medium'),
            due_date=naive_utc(task_data.get('due_date')),
            reminder_date=naive_utc(task_data.get('reminder_date')),
            estimated_hours=task_data.get('estimated_hours'),
            actual_hours=task_data.get('actual_hours'),
            project_id=task_data.get('project_id'),
            category_id=task_data.get('category_id'),
            assigned_to_id=task_data.get('assigned_to_id'),
            parent_task_id=task_data.get('parent_task_id'),
            created_by_id=created_by_id
        )
        apply_completion(task, {'status': task_data.get('status', 'pending')})
        if task_data.get('completed'):
            apply_completion(task, {'completed': True})

        db.session.add(task)
        db.session.commit()
        return task

    def find_many(self, query):
        tasks = self._list_query()

        for field in ['status', 'priority', 'project_id', 'category_id', 'assigned_to_id', 'created_by_id']:
            if query.get(field):
                tasks = tasks.filter(getattr(Task, field) == query[field])

        if query.get('completed') is not None:
            tasks = tasks.filter(Task.completed.is_(query['completed']))

        if query.get('search'):
            pattern = f"%{query['search']}%"
            tasks = tasks.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

        if not query.get('include_subtasks', True):
            tasks = tasks.filter(Task.parent_task_id.is_(None))

        if query.get('due_date'):
            # 當天 [00:00, 隔天 00:00)
            start = datetime.combine(query['due_date'], datetime.min.time())
            tasks = tasks.filter(Task.due_date >= start, Task.due_date < start + timedelta(days=1))

        sort_columns = {
            'createdAt': Task.created_at,
            'dueDate': Task.due_date,
            'priority': case(PRIORITY_RANK, value=Task.priority, else_=0),
            'title': Task.title
        }
        sort_column = sort_columns[query.get('sort_by', 'createdAt')]
        order = sort_column.asc() if query.get('sort_order') == 'asc' else sort_column.desc()

        return tasks.order_by(order, Task.id).all()

    def find_by_id(self, task_id):
        return db.session.get(Task, task_id)

    def find_details(self, task_id):
        return Task.query.options(
            joinedload(Task.project),
            joinedload(Task.category),
            joinedload(Task.assignee),
            joinedload(Task.creator)
        ).filter(Task.id == task_id).first()

    def update(self, task, update_data):
        self.check_references(update_data)

        for field in ['title', 'description', 'priority', 'estimated_hours', 'actual_hours',
                      'category_id', 'assigned_to_id']:
            if field in update_data:
                setattr(task, field, update_data[field])

        for field in ['due_date', 'reminder_date']:
            if field in update_data:
                setattr(task, field, naive_utc(update_data[field]))

        apply_completion(task, update_data)
        task.updated_at = utcnow()
        db.session.commit()
        return task

    def toggle_complete(self, task, completed):
        task.completed = completed
        task.status = 'completed' if completed else 'pending'
        task.updated_at = utcnow()
        db.session.commit()
        return task

    def collect_subtree_ids(self, task_id):
        """
        任務和所有子孫任務的 id

        只往下走同一個專案 (或同為個人任務) 的子任務,用 visited 集合避免 parent 循環
        """
        root = db.session.get(Task, task_id)
        project_id = root.project_id if root else None

        visited = {task_id}
        frontier = [task_id]
        while frontier:
            children = db.session.query(Task.id, Task.project_id).filter(
                Task.parent_task_id.in_(frontier)
            ).all()
            frontier = [
                row.id for row in children
                if row.id not in visited and row.project_id == project_id
            ]
            visited.update(frontier)
        return list(visited)

    def delete(self, task_id):
        """刪除任務、子任務樹以及它們的留言和附件 (單一 transaction)"""
        task_ids = self.collect_subtree_ids(task_id)

        # 其他專案掛在這棵樹下的任務保留,只解除 parent
        Task.query.filter(
            Task.parent_task_id.in_(task_ids),
            Task.id.notin_(task_ids)
        ).update({'parent_task_id': None}, synchronize_session=False)

        TaskComment.query.filter(TaskComment.task_id.in_(task_ids)).delete(synchronize_session=False)
        TaskAttachment.query.filter(TaskAttachment.task_id.in_(task_ids)).delete(synchronize_session=False)
        Task.query.filter(Task.id.in_(task_ids)).delete(synchronize_session=False)
        db.session.commit()
        return task_ids

    def get_user_tasks(self, user_id, filters):
        tasks = self._list_query().filter(
            or_(Task.assigned_to_id == user_id, Task.created_by_id == user_id)
        )

        if filters.get('status'):
            tasks = tasks.filter(Task.status == filters['status'])
        if filters.get('priority'):
            tasks = tasks.filter(Task.priority == filters['priority'])
        if filters.get('completed') is not None:
            tasks = tasks.filter(Task.completed.is_(filters['completed']))

        return tasks.order_by(Task.created_at.desc(), Task.id.desc()).all()

    def get_overdue_tasks(self):
        return self._list_query().filter(
            Task.completed.is_(False),
            Task.due_date.isnot(None),
            Task.due_date < utcnow()
        ).order_by(Task.due_date.asc()).all()

    def get_member(self, project_id, user_id):
        return ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).first()

    # ========== 留言 ==========

    def find_comment(self, task_id, comment_id):
        return TaskComment.query.filter_by(id=comment_id, task_id=task_id).first()

    def create_comment(self, task_id, user_id, content):
        comment = TaskComment(task_id=task_id, user_id=user_id, content=content)
        db.session.add(comment)
        db.session.commit()
        return comment

    def update_comment(self, comment, content):
        comment.content = content
        comment.updated_at = utcnow()
        db.session.commit()
        return comment

    def delete_comment(self, comment_id):
        TaskComment.query.filter_by(id=comment_id).delete(synchronize_session=False)
        db.session.commit()

    # ========== 附件 ==========

    def find_attachment(self, task_id, attachment_id):
        return TaskAttachment.query.filter_by(id=attachment_id, task_id=task_id).first()

    def create_attachment(self, task_id, user_id, attachment_data):
        attachment = TaskAttachment(
            task_id=task_id,
            uploaded_by_id=user_id,
            file_name=attachment_data['file_name'],
            file_url=attachment_data['file_url'],
            file_size=attachment_data.get('file_size'),
            mime_type=attachment_data.get('mime_type')
        )
        db.session.add(attachment)
        db.session.commit()
        return attachment

    def delete_attachment(self, attachment_id):
        TaskAttachment.query.filter_by(id=attachment_id).delete(synchronize_session=False)
        db.session.commit()

# ============================================
# Service
# ============================================

class TaskService:

    def __init__(self, repository=None):
        self.task_repository = repository or TaskRepository()

    def _require_task(self, task_id):
        task = self.task_repository.find_by_id(task_id)
        if not task:
            raise NotFoundError('Task not found')
        return task

    def _check_can_modify(self, task, user_id):
        """專案任務: 專案成員; 個人任務: 建立者或負責人"""
        if task.project_id:
            if not self.task_repository.get_member(task.project_id, user_id):
                raise PermissionDeniedError('Insufficient permissions')
        elif user_id not in (task.created_by_id, task.assigned_to_id):
            raise PermissionDeniedError('Insufficient permissions')

    def _check_can_delete(self, task, user_id):
        """建立者,或專案 owner/admin"""
        if task.created_by_id == user_id:
            return
        if task.project_id:
            member = self.task_repository.get_member(task.project_id, user_id)
            if member and member.role in ('owner', 'admin'):
                return
        raise PermissionDeniedError('Insufficient permissions')

    def _check_parent_task(self, parent_task_id, project_id, user_id):
        """子任務必須和 parent 在同一個專案,個人任務的 parent 還要是自己能修改的"""
        parent = self.task_repository.find_by_id(parent_task_id)
        if not parent:
            raise NotFoundError('Parent task not found')
        if parent.project_id != project_id:
            raise BadRequestError('Parent task must belong to the same project')
        self._check_can_modify(parent, user_id)

    def create_task(self, task_data, user_id):
        try:
            if task_data.get('project_id'):
                if not self.task_repository.get_member(task_data['project_id'], user_id):
                    self.task_repository.check_references({'project_id': task_data['project_id']})
                    raise PermissionDeniedError('User is not a project member')

            if task_data.get('parent_task_id'):
                self._check_parent_task(task_data['parent_task_id'], task_data.get('project_id'), user_id)

            task = self.task_repository.create(task_data, user_id)
            logger.info(f"Task created: {task.id} by user {user_id}")
            return ServiceResponse.success(
                'Task created successfully',
                serialize_task_details(self.task_repository.find_details(task.id)),
                201
            )
        except Exception as e:
            return service_failure(e, 'Error creating task', 'Failed to create task')

    def get_all_tasks(self, query):
        try:
            tasks = self.task_repository.find_many(query)
            return ServiceResponse.success('Tasks retrieved successfully', [serialize_task_row(t) for t in tasks])
        except Exception as e:
            return service_failure(e, 'Error retrieving tasks', 'Failed to retrieve tasks')

    def get_task_by_id(self, task_id):
        try:
            task = self.task_repository.find_details(task_id)
            if not task:
                return ServiceResponse.failure('Task not found', None, 404)
            return ServiceResponse.success('Task retrieved successfully', serialize_task_details(task))
        except Exception as e:
            return service_failure(e, 'Error retrieving task', 'Failed to retrieve task')

    def update_task(self, task_id, update_data, user_id):
        try:
            task = self._require_task(task_id)
            self._check_can_modify(task, user_id)

            self.task_repository.update(task, update_data)
            logger.info(f"Task {task_id} updated by user {user_id}")
            return ServiceResponse.success(
                'Task updated successfully',
                serialize_task_details(self.task_repository.find_details(task_id))
            )
        except Exception as e:
            return service_failure(e, 'Error updating task', 'Failed to update task')

    def delete_task(self, task_id, user_id):
        try:
            task = self._require_task(task_id)
            self._check_can_delete(task, user_id)

            deleted_ids = self.task_repository.delete(task_id)
            logger.info(f"Task {task_id} deleted by user {user_id} ({len(deleted_ids)} task(s) removed)")
            return ServiceResponse.success('Task deleted successfully', None)
        except Exception as e:
            return service_failure(e, 'Error deleting task', 'Failed to delete task')

    def toggle_task_complete(self, task_id, completed, user_id):
        try:
            task = self._require_task(task_id)
            self._check_can_modify(task, user_id)

            task = self.task_repository.toggle_complete(task, completed)
            message = 'Task marked as completed' if completed else 'Task marked as pending'
            return ServiceResponse.success(message, serialize_task(task))
        except Exception as e:
            return service_failure(e, 'Error toggling task completion', 'Failed to update task status')

    def get_user_tasks(self, user_id, filters):
        try:
            tasks = self.task_repository.get_user_tasks(user_id, filters)
            return ServiceResponse.success('User tasks retrieved successfully', [serialize_task_row(t) for t in tasks])
        except Exception as e:
            return service_failure(e, 'Error retrieving user tasks', 'Failed to retrieve user tasks')

    def get_overdue_tasks(self):
        try:
            tasks = self.task_repository.get_overdue_tasks()
            return ServiceResponse.success('Overdue tasks retrieved successfully', [serialize_task_row(t) for t in tasks])
        except Exception as e:
            return service_failure(e, 'Error retrieving overdue tasks', 'Failed to retrieve overdue tasks')

    def create_task_comment(self, task_id, content, user_id):
        try:
            self._require_task(task_id)
            comment = self.task_repository.create_comment(task_id, user_id, content)
            return ServiceResponse.success('Comment added successfully', serialize_comment(comment), 201)
        except Exception as e:
            return service_failure(e, 'Error creating task comment', 'Failed to add comment')

    def update_task_comment(self, task_id, comment_id, content, user_id):
        try:
            comment = self.task_repository.find_comment(task_id, comment_id)
            if not comment:
                raise NotFoundError('Comment not found')
            if comment.user_id != user_id:
                raise PermissionDeniedError('You can only update your own comments')

            comment = self.task_repository.update_comment(comment, content)
            return ServiceResponse.success('Comment updated successfully', serialize_comment(comment))
        except Exception as e:
            return service_failure(e, 'Error updating task comment', 'Failed to update comment')

    def delete_task_comment(self, task_id, comment_id, user_id):
        try:
            comment = self.task_repository.find_comment(task_id, comment_id)
            if not comment:
                raise NotFoundError('Comment not found')
            if comment.user_id != user_id:
                raise PermissionDeniedError('You can only delete your own comments')

            self.task_repository.delete_comment(comment_id)
            return ServiceResponse.success('Comment deleted successfully', None)
        except Exception as e:
            return service_failure(e, 'Error deleting task comment', 'Failed to delete comment')

    def create_task_attachment(self, task_id, attachment_data, user_id):
        try:
            self._require_task(task_id)
            attachment = self.task_repository.create_attachment(task_id, user_id, attachment_data)
            return ServiceResponse.success('Attachment added successfully', serialize_attachment(attachment), 201)
        except Exception as e:
            return service_failure(e, 'Error creating task attachment', 'Failed to add attachment')

    def delete_task_attachment(self, task_id, attachment_id, user_id):
        try:
            task = self._require_task(task_id)
            attachment = self.task_repository.find_attachment(task_id, attachment_id)
            if not attachment:
                raise NotFoundError('Attachment not found')
            if user_id not in (attachment.uploaded_by_id, task.created_by_id):
                raise PermissionDeniedError('Insufficient permissions')

            self.task_repository.delete_attachment(attachment_id)
            return ServiceResponse.success('Attachment deleted successfully', None)
        except Exception as e:
            return service_failure(e, 'Error deleting task attachment', 'Failed to delete attachment')


task_service = TaskService()

# ============================================
# Routes
# ============================================

@tasks_bp.route('', methods=['POST'])
@jwt_required()
def create_task():
    """建立任務 (專案任務需要是專案成員)"""
    result, error = load_json_body(CreateTaskSchema)
    if error:
        return error
    return handle_service_response(task_service.create_task(result, current_user_id()))


@tasks_bp.route('', methods=['GET'])
@jwt_required()
def get_tasks():
    query, error = load_query_args(GetTasksQuerySchema)
    if error:
        return error
    return handle_service_response(task_service.get_all_tasks(query))


@tasks_bp.route('/my-tasks', methods=['GET'])
@jwt_required()
def get_my_tasks():
    """指派給我或我建立的任務"""
    filters, error = load_query_args(MyTasksQuerySchema)
    if error:
        return error
    return handle_service_response(task_service.get_user_tasks(current_user_id(), filters))


@tasks_bp.route('/overdue', methods=['GET'])
@jwt_required()
def get_overdue_tasks():
    return handle_service_response(task_service.get_overdue_tasks())


@tasks_bp.route('/<int:task_id>', methods=['GET'])
@jwt_required()
def get_task(task_id):
    return handle_service_response(task_service.get_task_by_id(task_id))


@tasks_bp.route('/<int:task_id>', methods=['PUT'])
@jwt_required()
def update_task(task_id):
    result, error = load_json_body(UpdateTaskSchema)
    if error:
        return error
    return handle_service_response(task_service.update_task(task_id, result, current_user_id()))


@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@jwt_required()
def delete_task(task_id):
    """刪除任務 (連同子任務)"""
    return handle_service_response(task_service.delete_task(task_id, current_user_id()))


@tasks_bp.route('/<int:task_id>/toggle-complete', methods=['PATCH'])
@jwt_required()
def toggle_task_complete(task_id):
    result, error = load_json_body(ToggleCompleteSchema)
    if error:
        return error
    return handle_service_response(
        task_service.toggle_task_complete(task_id, result['completed'], current_user_id())
    )


@tasks_bp.route('/<int:task_id>/comments', methods=['POST'])
@jwt_required()
def create_task_comment(task_id):
    result, error = load_json_body(TaskCommentSchema)
    if error:
        return error
    return handle_service_response(
        task_service.create_task_comment(task_id, result['content'], current_user_id())
    )


@tasks_bp.route('/<int:task_id>/comments/<int:comment_id>', methods=['PUT'])
@jwt_required()
def update_task_comment(task_id, comment_id):
    result, error = load_json_body(TaskCommentSchema)
    if error:
        return error
    return handle_service_response(
        task_service.update_task_comment(task_id, comment_id, result['content'], current_user_id())
    )


@tasks_bp.route('/<int:task_id>/comments/<int:comment_id>', methods=['DELETE'])
@jwt_required()
def delete_task_comment(task_id, comment_id):
    return handle_service_response(
        task_service.delete_task_comment(task_id, comment_id, current_user_id())
    )


@tasks_bp.route('/<int:task_id>/attachments', methods=['POST'])
@jwt_required()
def create_task_attachment(task_id):
    result, error = load_json_body(TaskAttachmentSchema)
    if error:
        return error
    return handle_service_response(
        task_service.create_task_attachment(task_id, result, current_user_id())
    )


@tasks_bp.route('/<int:task_id>/attachments/<int:attachment_id>', methods=['DELETE'])
@jwt_required()
def delete_task_attachment(task_id, attachment_id):
    return handle_service_response(
        task_service.delete_task_attachment(task_id, attachment_id, current_user_id())
    )
