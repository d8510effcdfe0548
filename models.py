from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone

db = SQLAlchemy()


def utcnow():
    """naive UTC 時間 (資料庫欄位都不帶時區)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================
# 1. User 模型
# ============================================
class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(255), nullable=False)
    last_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)  # bcrypt hash
    role = db.Column(db.String(50), nullable=False, default='member')  # admin, project_manager, member
    avatar = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # 關聯
    owned_projects = db.relationship('Project', backref='owner', lazy=True)
    project_memberships = db.relationship('ProjectMember', backref='user', lazy=True)
    categories = db.relationship('Category', backref='user', lazy=True)

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'

# ============================================
# 2. Project 模型
# ============================================
class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), nullable=False, default='active')  # active, completed, archived
    priority = db.Column(db.String(20), nullable=False, default='medium')  # low, medium, high, urgent
    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # 關聯 (刪除由 repository 手動 cascade)
    members = db.relationship('ProjectMember', backref='project', lazy=True)
    tasks = db.relationship('Task', backref='project', lazy=True)
    comments = db.relationship('ProjectComment', backref='project', lazy=True)

    __table_args__ = (
        db.Index('idx_project_status', 'status'),
        db.Index('idx_project_owner', 'owner_id'),
    )

# ============================================
# 3. ProjectMember 模型
# ============================================
class ProjectMember(db.Model):
    __tablename__ = 'project_members'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    role = db.Column(db.String(50), nullable=False, default='member')  # owner, admin, member
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # 唯一性約束
    __table_args__ = (
        db.UniqueConstraint('project_id', 'user_id', name='unique_project_member'),
    )

# ============================================
# 4. Category 模型
# ============================================
class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(7), nullable=False, default='#3B82F6')
    description = db.Column(db.Text)
    # NULL 代表全域分類,否則為個人分類
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    tasks = db.relationship('Task', backref='category', lazy=True)

    @property
    def is_global(self):
        return self.user_id is None

# ============================================
# 5. Task 模型
# ============================================
class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), nullable=False, default='pending')  # pending, in_progress, completed, cancelled
    priority = db.Column(db.String(20), nullable=False, default='medium')  # low, medium, high, urgent
    completed = db.Column(db.Boolean, nullable=False, default=False)

    due_date = db.Column(db.DateTime, nullable=True)
    reminder_date = db.Column(db.DateTime, nullable=True)
    estimated_hours = db.Column(db.Integer)
    actual_hours = db.Column(db.Integer)

    # 關聯欄位
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=True)  # NULL = 個人任務
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'), nullable=True)
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    parent_task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # 關聯
    assignee = db.relationship('User', foreign_keys=[assigned_to_id], backref='assigned_tasks')
    creator = db.relationship('User', foreign_keys=[created_by_id], backref='created_tasks')
    comments = db.relationship('TaskComment', backref='task', lazy=True)
    attachments = db.relationship('TaskAttachment', backref='task', lazy=True)

    # 自我關聯 (子任務)
    subtasks = db.relationship('Task', backref=db.backref('parent_task', remote_side=[id]))

    # 索引
    __table_args__ = (
        db.Index('idx_task_project_status', 'project_id', 'status'),
        db.Index('idx_task_assigned_status', 'assigned_to_id', 'status'),
        db.Index('idx_task_due_date', 'due_date'),
        db.Index('idx_task_parent', 'parent_task_id'),
    )

# ============================================
# 6. TaskComment 模型
# ============================================
class TaskComment(db.Model):
    __tablename__ = 'task_comments'

    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship('User', backref='task_comments')

# ============================================
# 7. TaskAttachment 模型
# ============================================
class TaskAttachment(db.Model):
    __tablename__ = 'task_attachments'

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer)
    mime_type = db.Column(db.String(100))
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id'), nullable=False)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    uploader = db.relationship('User', backref='uploaded_files')

# ============================================
# 8. ProjectComment 模型
# ============================================
class ProjectComment(db.Model):
    __tablename__ = 'project_comments'

    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship('User', backref='project_comments')
