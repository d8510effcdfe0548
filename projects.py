from flask import Blueprint
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy import func, case, and_, or_
from marshmallow import Schema, fields, validate
from models import (
    db, Project, ProjectMember, ProjectComment, User, Task, TaskComment, TaskAttachment, utcnow
)
from errors import BadRequestError, ConflictError, NotFoundError, PermissionDeniedError
from common import (
    ServiceResponse, handle_service_response, service_failure,
    load_json_body, load_query_args, current_user_id, isoformat, naive_utc, user_summary
)
import logging

projects_bp = Blueprint('projects', __name__)
logger = logging.getLogger(__name__)

PROJECT_STATUSES = ['active', 'completed', 'archived']
PRIORITIES = ['low', 'medium', 'high', 'urgent']
MEMBER_ROLES = ['owner', 'admin', 'member']
MANAGER_ROLES = ('owner', 'admin')

# ============================================
# Input Validation Schemas
# ============================================

class CreateProjectSchema(Schema):
    """建立專案驗證"""
    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Project name is required'}
    )
    description = fields.Str(validate=validate.Length(max=2000), allow_none=True)
    priority = fields.Str(validate=validate.OneOf(PRIORITIES), load_default='medium')
    start_date = fields.DateTime(data_key='startDate', allow_none=True)
    end_date = fields.DateTime(data_key='endDate', allow_none=True)
    member_ids = fields.List(fields.Int(), data_key='memberIds', load_default=list)

class UpdateProjectSchema(Schema):
    """更新專案驗證"""
    name = fields.Str(validate=validate.Length(min=1, max=255))
    description = fields.Str(validate=validate.Length(max=2000), allow_none=True)
    status = fields.Str(validate=validate.OneOf(PROJECT_STATUSES))
    priority = fields.Str(validate=validate.OneOf(PRIORITIES))
    start_date = fields.DateTime(data_key='startDate', allow_none=True)
    end_date = fields.DateTime(data_key='endDate', allow_none=True)

class GetProjectsQuerySchema(Schema):
    status = fields.Str(validate=validate.OneOf(PROJECT_STATUSES))
    priority = fields.Str(validate=validate.OneOf(PRIORITIES))
    owner_id = fields.Int(data_key='ownerId')
    member_id = fields.Int(data_key='memberId')
    search = fields.Str()
    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    limit = fields.Int(load_default=10, validate=validate.Range(min=1, max=100))

class MemberSchema(Schema):
    user_id = fields.Int(required=True, data_key='userId')
    role = fields.Str(validate=validate.OneOf(MEMBER_ROLES), load_default='member')

class AddMembersSchema(Schema):
    """新增成員驗證"""
    members = fields.List(
        fields.Nested(MemberSchema),
        required=True,
        validate=validate.Length(min=1, error='At least one member is required')
    )

class UpdateMemberRoleSchema(Schema):
    role = fields.Str(required=True, validate=validate.OneOf(MEMBER_ROLES))

class ProjectCommentSchema(Schema):
    content = fields.Str(required=True, validate=validate.Length(min=1, max=5000))

# ============================================
# 序列化
# ============================================

def serialize_project(project):
    return {
        'id': project.id,
        'name': project.name,
        'description': project.description,
        'status': project.status,
        'priority': project.priority,
        'startDate': isoformat(project.start_date),
        'endDate': isoformat(project.end_date),
        'ownerId': project.owner_id,
        'createdAt': isoformat(project.created_at),
        'updatedAt': isoformat(project.updated_at)
    }


def serialize_member(member):
    return {
        'id': member.id,
        'userId': member.user_id,
        'role': member.role,
        'joinedAt': isoformat(member.joined_at),
        'user': user_summary(member.user)
    }


def serialize_project_comment(comment):
    return {
        'id': comment.id,
        'content': comment.content,
        'projectId': comment.project_id,
        'userId': comment.user_id,
        'createdAt': isoformat(comment.created_at),
        'updatedAt': isoformat(comment.updated_at),
        'user': user_summary(comment.user, with_email=False)
    }

# ============================================
# Repository
# ============================================

class ProjectRepository:

    def create(self, project_data, owner_id):
        """
        建立專案

        專案、owner 成員資格和 memberIds 在同一個 transaction 裡寫入
        """
        project = Project(
            name=project_data['name'],
            description=project_data.get('description'),
            priority=project_data.get('priority', 'medium'),
            start_date=naive_utc(project_data.get('start_date')),
            end_date=naive_utc(project_data.get('end_date')),
            owner_id=owner_id
        )
        db.session.add(project)
        db.session.flush()  # 取得 project.id 但不 commit

        db.session.add(ProjectMember(project_id=project.id, user_id=owner_id, role='owner'))

        for user_id in dict.fromkeys(project_data.get('member_ids') or []):
            if user_id == owner_id:
                continue
            if not db.session.get(User, user_id):
                raise NotFoundError('User not found')
            db.session.add(ProjectMember(project_id=project.id, user_id=user_id, role='member'))

        db.session.commit()
        return project

    def find_many(self, query):
        projects = Project.query.options(joinedload(Project.owner))

        if query.get('status'):
            projects = projects.filter(Project.status == query['status'])

        if query.get('priority'):
            projects = projects.filter(Project.priority == query['priority'])

        if query.get('owner_id'):
            projects = projects.filter(Project.owner_id == query['owner_id'])

        if query.get('member_id'):
            member_project_ids = db.select(ProjectMember.project_id).where(
                ProjectMember.user_id == query['member_id']
            )
            projects = projects.filter(Project.id.in_(member_project_ids))

        if query.get('search'):
            pattern = f"%{query['search']}%"
            projects = projects.filter(or_(
                Project.name.ilike(pattern),
                Project.description.ilike(pattern)
            ))

        return projects.order_by(Project.created_at.desc()).paginate(
            page=query.get('page', 1),
            per_page=query.get('limit', 10),
            error_out=False
        )

    def find_by_id(self, project_id):
        return db.session.get(Project, project_id)

    def find_details(self, project_id):
        """專案 + owner + 成員 + 任務統計"""
        project = Project.query.options(
            joinedload(Project.owner),
            selectinload(Project.members).joinedload(ProjectMember.user)
        ).filter(Project.id == project_id).first()

        if not project:
            return None

        task_counts = db.session.query(
            func.count(Task.id).label('total'),
            func.sum(case((Task.completed.is_(True), 1), else_=0)).label('completed')
        ).filter(Task.project_id == project_id).first()

        details = serialize_project(project)
        details.update({
            'owner': user_summary(project.owner),
            'members': [serialize_member(m) for m in project.members],
            'tasksCount': task_counts.total or 0,
            'completedTasksCount': int(task_counts.completed or 0)
        })
        return details

    def update(self, project_id, update_data):
        project = db.session.get(Project, project_id)
        if not project:
            return None

        for field in ['name', 'description', 'status', 'priority']:
            if field in update_data:
                setattr(project, field, update_data[field])

        for field in ['start_date', 'end_date']:
            if field in update_data:
                setattr(project, field, naive_utc(update_data[field]))

        project.updated_at = utcnow()
        db.session.commit()
        return project

    def delete(self, project_id):
        """
        刪除專案 (手動 cascade,單一 transaction)

        成員、專案留言、任務和任務的留言/附件一起刪除,
        專案外指向被刪任務的子任務改成沒有 parent
        """
        task_ids = [row.id for row in db.session.query(Task.id).filter(Task.project_id == project_id)]

        if task_ids:
            TaskComment.query.filter(TaskComment.task_id.in_(task_ids)).delete(synchronize_session=False)
            TaskAttachment.query.filter(TaskAttachment.task_id.in_(task_ids)).delete(synchronize_session=False)
            Task.query.filter(
                Task.parent_task_id.in_(task_ids),
                ~Task.id.in_(task_ids)
            ).update({'parent_task_id': None}, synchronize_session=False)
            Task.query.filter(Task.id.in_(task_ids)).delete(synchronize_session=False)

        ProjectComment.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        ProjectMember.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        Project.query.filter_by(id=project_id).delete(synchronize_session=False)
        db.session.commit()

    # ========== 成員 ==========

    def get_member(self, project_id, user_id):
        return ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).first()

    def add_members(self, project_id, members):
        added = []
        for member in members:
            if not db.session.get(User, member['user_id']):
                raise NotFoundError('User not found')
            if self.get_member(project_id, member['user_id']):
                raise ConflictError('User is already a project member')

            project_member = ProjectMember(
                project_id=project_id,
                user_id=member['user_id'],
                role=member.get('role', 'member')
            )
            db.session.add(project_member)
            db.session.flush()
            added.append(project_member)

        db.session.commit()
        return added

    def remove_member(self, project_id, user_id):
        ProjectMember.query.filter_by(
            project_id=project_id, user_id=user_id
        ).delete(synchronize_session=False)
        db.session.commit()

    def count_owners(self, project_id):
        return ProjectMember.query.filter_by(project_id=project_id, role='owner').count()

    def update_member_role(self, project_id, user_id, role):
        member = self.get_member(project_id, user_id)
        if not member:
            return None
        member.role = role
        db.session.commit()
        return member

    def get_user_projects(self, user_id):
        """使用者參與的專案 (含自己的角色)"""
        return db.session.query(Project, ProjectMember.role).join(
            ProjectMember, Project.id == ProjectMember.project_id
        ).filter(
            ProjectMember.user_id == user_id
        ).order_by(Project.created_at.desc()).all()

    def get_stats(self, project_id):
        """聚合查詢,避免 N+1"""
        now = utcnow()
        task_stats = db.session.query(
            func.count(Task.id).label('total'),
            func.sum(case((Task.status == 'pending', 1), else_=0)).label('pending'),
            func.sum(case((Task.status == 'in_progress', 1), else_=0)).label('in_progress'),
            func.sum(case((Task.status == 'completed', 1), else_=0)).label('completed'),
            func.sum(case((Task.status == 'cancelled', 1), else_=0)).label('cancelled'),
            func.sum(case((and_(Task.due_date < now, Task.completed.is_(False)), 1), else_=0)).label('overdue')
        ).filter(Task.project_id == project_id).first()

        member_count = ProjectMember.query.filter_by(project_id=project_id).count()

        total = task_stats.total or 0
        completed = int(task_stats.completed or 0)
        return {
            'tasks': {
                'total': total,
                'pending': int(task_stats.pending or 0),
                'inProgress': int(task_stats.in_progress or 0),
                'completed': completed,
                'cancelled': int(task_stats.cancelled or 0),
                'overdue': int(task_stats.overdue or 0)
            },
            'members': member_count,
            'completionRate': round(completed / (total or 1) * 100, 2)
        }

    # ========== 專案留言 ==========

    def find_comments(self, project_id):
        return ProjectComment.query.options(joinedload(ProjectComment.user)).filter_by(
            project_id=project_id
        ).order_by(ProjectComment.created_at.desc()).all()

    def create_comment(self, project_id, user_id, content):
        comment = ProjectComment(project_id=project_id, user_id=user_id, content=content)
        db.session.add(comment)
        db.session.commit()
        return comment

    def find_comment(self, project_id, comment_id):
        return ProjectComment.query.filter_by(id=comment_id, project_id=project_id).first()

    def delete_comment(self, comment_id):
        ProjectComment.query.filter_by(id=comment_id).delete(synchronize_session=False)
        db.session.commit()

# ============================================
# Service
# ============================================

class ProjectService:

    def __init__(self, repository=None):
        self.project_repository = repository or ProjectRepository()

    def _require_project(self, project_id):
        project = self.project_repository.find_by_id(project_id)
        if not project:
            raise NotFoundError('Project not found')
        return project

    def _require_member(self, project_id, user_id, roles=None, message='Insufficient permissions'):
        """檢查成員資格,roles 有值時還要檢查角色"""
        member = self.project_repository.get_member(project_id, user_id)
        if not member:
            raise PermissionDeniedError(message if roles else 'User is not a project member')
        if roles and member.role not in roles:
            raise PermissionDeniedError(message)
        return member

    def _check_not_last_owner(self, project_id):
        if self.project_repository.count_owners(project_id) <= 1:
            raise BadRequestError('Project must have at least one owner')

    def create_project(self, project_data, user_id):
        try:
            project = self.project_repository.create(project_data, user_id)
            logger.info(f"Project created: {project.name} by user {user_id}")
            details = self.project_repository.find_details(project.id)
            return ServiceResponse.success('Project created successfully', details, 201)
        except Exception as e:
            return service_failure(e, 'Error creating project', 'Failed to create project')

    def get_projects(self, query):
        try:
            page = self.project_repository.find_many(query)
            limit = query.get('limit', 10)
            return ServiceResponse.success('Projects retrieved successfully', {
                'projects': [
                    dict(serialize_project(p), owner=user_summary(p.owner)) for p in page.items
                ],
                'pagination': {
                    'page': query.get('page', 1),
                    'limit': limit,
                    'total': page.total,
                    'totalPages': page.pages
                }
            })
        except Exception as e:
            return service_failure(e, 'Error retrieving projects', 'Failed to retrieve projects')

    def get_my_projects(self, user_id):
        try:
            rows = self.project_repository.get_user_projects(user_id)
            projects = [dict(serialize_project(p), memberRole=role) for p, role in rows]
            return ServiceResponse.success('User projects retrieved successfully', projects)
        except Exception as e:
            return service_failure(e, 'Error retrieving user projects', 'Failed to retrieve user projects')

    def get_project_by_id(self, project_id):
        try:
            details = self.project_repository.find_details(project_id)
            if not details:
                return ServiceResponse.failure('Project not found', None, 404)
            return ServiceResponse.success('Project retrieved successfully', details)
        except Exception as e:
            return service_failure(e, 'Error retrieving project', 'Failed to retrieve project')

    def get_project_stats(self, project_id, user_id):
        try:
            self._require_project(project_id)
            self._require_member(project_id, user_id)
            stats = self.project_repository.get_stats(project_id)
            return ServiceResponse.success('Project stats retrieved successfully', stats)
        except Exception as e:
            return service_failure(e, 'Error retrieving project stats', 'Failed to retrieve project stats')

    def update_project(self, project_id, update_data, user_id):
        try:
            self._require_project(project_id)
            self._require_member(project_id, user_id, MANAGER_ROLES)

            self.project_repository.update(project_id, update_data)
            logger.info(f"Project {project_id} updated by user {user_id}")
            details = self.project_repository.find_details(project_id)
            return ServiceResponse.success('Project updated successfully', details)
        except Exception as e:
            return service_failure(e, 'Error updating project', 'Failed to update project')

    def delete_project(self, project_id, user_id):
        try:
            self._require_project(project_id)
            self._require_member(project_id, user_id, ('owner',), 'Only project owner can delete project')

            self.project_repository.delete(project_id)
            logger.info(f"Project {project_id} deleted by user {user_id}")
            return ServiceResponse.success('Project deleted successfully', None)
        except Exception as e:
            return service_failure(e, 'Error deleting project', 'Failed to delete project')

    def add_project_members(self, project_id, members, user_id):
        try:
            self._require_project(project_id)
            caller = self._require_member(project_id, user_id, MANAGER_ROLES)

            if caller.role != 'owner' and any(m.get('role') == 'owner' for m in members):
                raise PermissionDeniedError('Only owner can assign owner role')

            added = self.project_repository.add_members(project_id, members)
            logger.info(f"{len(added)} member(s) added to project {project_id} by user {user_id}")
            return ServiceResponse.success(
                'Members added successfully', [serialize_member(m) for m in added], 201
            )
        except Exception as e:
            return service_failure(e, 'Error adding project members', 'Failed to add project members')

    def remove_project_member(self, project_id, member_id, user_id):
        """
        移除成員

        owner/admin 可以移除別人,任何人都可以退出專案,但 owner 不能被別人移除
        """
        try:
            self._require_project(project_id)
            caller = self._require_member(project_id, user_id)

            if member_id != user_id and caller.role not in MANAGER_ROLES:
                raise PermissionDeniedError('Insufficient permissions')

            target = self.project_repository.get_member(project_id, member_id)
            if not target:
                raise NotFoundError('Member not found')

            if target.role == 'owner' and member_id != user_id:
                raise PermissionDeniedError('Cannot remove project owner')

            if target.role == 'owner':
                self._check_not_last_owner(project_id)

            self.project_repository.remove_member(project_id, member_id)
            logger.info(f"User {member_id} removed from project {project_id} by user {user_id}")
            return ServiceResponse.success('Member removed successfully', None)
        except Exception as e:
            return service_failure(e, 'Error removing project member', 'Failed to remove project member')

    def update_member_role(self, project_id, member_id, new_role, user_id):
        try:
            self._require_project(project_id)
            caller = self._require_member(project_id, user_id, MANAGER_ROLES)

            target = self.project_repository.get_member(project_id, member_id)
            if not target:
                raise NotFoundError('Member not found')

            # 跟 owner 有關的角色變動只有 owner 能做
            if (new_role == 'owner' or target.role == 'owner') and caller.role != 'owner':
                raise PermissionDeniedError('Only owner can assign owner role')

            if target.role == 'owner' and new_role != 'owner':
                self._check_not_last_owner(project_id)

            member =self.project_repository.update_member_role(project_id, member_id, new_role)
            logger.info(f"User {member_id} role in project {project_id} set to {new_role}")
            return ServiceResponse.success('Member role updated successfully', serialize_member(member))
        except Exception as e:
            return service_failure(e, 'Error updating member role', 'Failed to update member role')

    def get_project_comments(self, project_id):
        try:
            self._require_project(project_id)
            comments = self.project_repository.find_comments(project_id)
            return ServiceResponse.success(
                'Project comments retrieved successfully',
                [serialize_project_comment(c) for c in comments]
            )
        except Exception as e:
            return service_failure(e, 'Error retrieving project comments', 'Failed to retrieve project comments')

    def add_project_comment(self, project_id, content, user_id):
        try:
            self._require_project(project_id)
            self._require_member(project_id, user_id)

            comment = self.project_repository.create_comment(project_id, user_id, content)
            return ServiceResponse.success('Comment added successfully', serialize_project_comment(comment), 201)
        except Exception as e:
            return service_failure(e, 'Error adding project comment', 'Failed to add comment')

    def delete_project_comment(self, project_id, comment_id, user_id):
        try:
            self._require_project(project_id)

            comment = self.project_repository.find_comment(project_id, comment_id)
            if not comment:
                raise NotFoundError('Comment not found')

            if comment.user_id != user_id:
                self._require_member(project_id, user_id, MANAGER_ROLES)

            self.project_repository.delete_comment(comment_id)
            return ServiceResponse.success('Comment deleted successfully', None)
        except Exception as e:
            return service_failure(e, 'Error deleting project comment', 'Failed to delete comment')


project_service = ProjectService()

# ============================================
# Routes
# ============================================

@projects_bp.route('', methods=['POST'])
@jwt_required()
def create_project():
    """建立新專案 (建立者自動成為 owner)"""
    result, error = load_json_body(CreateProjectSchema)
    if error:
        return error
    return handle_service_response(project_service.create_project(result, current_user_id()))


@projects_bp.route('', methods=['GET'])
@jwt_required()
def get_projects():
    """查詢專案 (篩選 + 分頁)"""
    query, error = load_query_args(GetProjectsQuerySchema)
    if error:
        return error
    return handle_service_response(project_service.get_projects(query))


@projects_bp.route('/my-projects', methods=['GET'])
@jwt_required()
def get_my_projects():
    return handle_service_response(project_service.get_my_projects(current_user_id()))


@projects_bp.route('/<int:project_id>', methods=['GET'])
@jwt_required()
def get_project(project_id):
    return handle_service_response(project_service.get_project_by_id(project_id))


@projects_bp.route('/<int:project_id>/stats', methods=['GET'])
@jwt_required()
def get_project_stats(project_id):
    """取得專案統計資訊"""
    return handle_service_response(project_service.get_project_stats(project_id, current_user_id()))


@projects_bp.route('/<int:project_id>', methods=['PUT'])
@jwt_required()
def update_project(project_id):
    result, error = load_json_body(UpdateProjectSchema)
    if error:
        return error
    return handle_service_response(project_service.update_project(project_id, result, current_user_id()))


@projects_bp.route('/<int:project_id>', methods=['DELETE'])
@jwt_required()
def delete_project(project_id):
    """刪除專案 (只有 owner)"""
    return handle_service_response(project_service.delete_project(project_id, current_user_id()))


@projects_bp.route('/<int:project_id>/members', methods=['POST'])
@jwt_required()
def add_project_members(project_id):
    result, error = load_json_body(AddMembersSchema)
    if error:
        return error
    return handle_service_response(
        project_service.add_project_members(project_id, result['members'], current_user_id())
    )


@projects_bp.route('/<int:project_id>/members/<int:member_id>', methods=['DELETE'])
@jwt_required()
def remove_project_member(project_id, member_id):
    return handle_service_response(
        project_service.remove_project_member(project_id, member_id, current_user_id())
    )


@projects_bp.route('/<int:project_id>/members/<int:member_id>/role', methods=['PATCH'])
@jwt_required()
def update_member_role(project_id, member_id):
    result, error = load_json_body(UpdateMemberRoleSchema)
    if error:
        return error
    return handle_service_response(
        project_service.update_member_role(project_id, member_id, result['role'], current_user_id())
    )


@projects_bp.route('/<int:project_id>/comments', methods=['GET'])
@jwt_required()
def get_project_comments(project_id):
    return handle_service_response(project_service.get_project_comments(project_id))


@projects_bp.route('/<int:project_id>/comments', methods=['POST'])
@jwt_required()
def add_project_comment(project_id):
    result, error = load_json_body(ProjectCommentSchema)
    if error:
        return error
    return handle_service_response(
        project_service.add_project_comment(project_id, result['content'], current_user_id())
    )


@projects_bp.route('/<int:project_id>/comments/<int:comment_id>', methods=['DELETE'])
@jwt_required()
def delete_project_comment(project_id, comment_id):
    return handle_service_response(
        project_service.delete_project_comment(project_id, comment_id, current_user_id())
    )
