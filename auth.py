from flask import Blueprint, request
from flask_jwt_extended import create_access_token, create_refresh_token, jwt_required, get_jwt_identity
from marshmallow import Schema, fields, validate, EXCLUDE
from models import db, User, utcnow
from extensions import bcrypt, limiter
from errors import AuthenticationError, ConflictError, BadRequestError, NotFoundError, PermissionDeniedError
from common import (
    ServiceResponse, handle_service_response, error_response, service_failure,
    validate_request_data, load_json_body, current_user_id, serialize_user
)
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

USER_ROLES = ['admin', 'project_manager', 'member']

# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

class RegisterSchema(Schema):
    """註冊輸入驗證"""
    first_name = fields.Str(
        required=True, data_key='firstName',
        validate=validate.Length(min=1, max=255, error='First name is required')
    )
    last_name = fields.Str(
        required=True, data_key='lastName',
        validate=validate.Length(min=1, max=255, error='Last name is required')
    )
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Valid email is required'
    })
    password = fields.Str(
        required=True,
        validate=validate.Length(min=6, error='Password must be at least 6 characters')
    )
    role = fields.Str(validate=validate.OneOf(USER_ROLES), load_default='member')
    avatar = fields.Url()

class LoginSchema(Schema):
    """登入輸入驗證"""
    email = fields.Email(required=True)
    password = fields.Str(required=True, validate=validate.Length(min=6))

class ChangePasswordSchema(Schema):
    """密碼修改驗證"""
    current_password = fields.Str(
        required=True, data_key='currentPassword',
        validate=validate.Length(min=6, error='Current password is required')
    )
    new_password = fields.Str(
        required=True, data_key='newPassword',
        validate=validate.Length(min=6, error='New password must be at least 6 characters')
    )

class ResetPasswordSchema(Schema):
    """重設密碼驗證"""
    email = fields.Email(
        required=True,
        error_messages={'required': 'Email is required', 'invalid': 'Valid email is required'}
    )

# ============================================
# 密碼與 Token
# ============================================

def hash_password(password):
    return bcrypt.generate_password_hash(password).decode('utf-8')

def check_password(password_hash, password):
    return bcrypt.check_password_hash(password_hash, password)

def generate_tokens(user):
    """
    產生 access / refresh token

    access token 內含 {id, email, firstName, lastName, role}
    """
    claims = {
        'id': user.id,
        'email': user.email,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'role': user.role
    }
    access_token = create_access_token(identity=str(user.id), additional_claims=claims)
    refresh_token = create_refresh_token(identity=str(user.id))
    return access_token, refresh_token

# ============================================
# Repository
# ============================================

class AuthRepository:

    def register(self, user_data):
        if User.query.filter_by(email=user_data['email']).first():
            raise ConflictError('User already exists with this email')

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

        access_token, refresh_token = generate_tokens(user)
        return {
            'user': serialize_user(user),
            'token': access_token,
            'refreshToken': refresh_token
        }

    def login(self, credentials):
        user = User.query.filter_by(email=credentials['email']).first()

        # 不區分是 email 錯還是 password 錯,避免帳號枚舉攻擊
        if not user or not check_password(user.password, credentials['password']):
            raise AuthenticationError('Invalid email or password')

        if not user.is_active:
            raise PermissionDeniedError('Account is disabled')

        access_token, refresh_token = generate_tokens(user)
        return {
            'user': serialize_user(user),
            'token': access_token,
            'refreshToken': refresh_token
        }

    def get_user_by_id(self, user_id):
        return db.session.get(User, user_id)

    def change_password(self, user_id, current_password, new_password):
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError('User not found')

        if not check_password(user.password, current_password):
            raise BadRequestError('Current password is incorrect')

        user.password = hash_password(new_password)
        user.updated_at = utcnow()
        db.session.commit()
        return True

    def find_user_by_email(self, email):
        return User.query.filter_by(email=email).first()

# ============================================
# Service
# ============================================

class AuthService:

    def __init__(self, repository=None):
        self.auth_repository = repository or AuthRepository()

    def register(self, user_data):
        try:
            result = self.auth_repository.register(user_data)
            logger.info(f"New user registered: {user_data['email']}")
            return ServiceResponse.success('User registered successfully', result, 201)
        except Exception as e:
            return service_failure(e, 'Error registering user', 'Failed to register user')

    def login(self, credentials):
        try:
            result = self.auth_repository.login(credentials)
            logger.info(f"User logged in: {credentials['email']}")
            return ServiceResponse.success('Login successful', result)
        except Exception as e:
            return service_failure(e, f"Failed login attempt for {credentials['email']}", 'Failed to login')

    def get_current_user(self, user_id):
        try:
            user = self.auth_repository.get_user_by_id(user_id)
            if not user:
                logger.warning(f"Token valid but user not found: {user_id}")
                return ServiceResponse.failure('User not found', None, 404)
            return ServiceResponse.success('User retrieved successfully', serialize_user(user))
        except Exception as e:
            return service_failure(e, 'Error retrieving user', 'Failed to retrieve user')

    def refresh_token(self, user_id):
        try:
            user = self.auth_repository.get_user_by_id(user_id)
            if not user or not user.is_active:
                return ServiceResponse.failure('Invalid or inactive user', None, 401)
            access_token, _ = generate_tokens(user)
            return ServiceResponse.success('Token refreshed successfully', {'token': access_token})
        except Exception as e:
            return service_failure(e, 'Error refreshing token', 'Failed to refresh token')

    def change_password(self, user_id, password_data):
        try:
            self.auth_repository.change_password(
                user_id, password_data['current_password'], password_data['new_password']
            )
            logger.info(f"Password changed for user: {user_id}")
            return ServiceResponse.success('Password changed successfully', None)
        except Exception as e:
            return service_failure(e, 'Error changing password', 'Failed to change password')

    def reset_password(self, email):
        """
        重設密碼 (stub)

        不論 email 是否存在都回傳相同訊息,也不實際寄信
        """
        message = 'If the email exists, a password reset link has been sent'
        try:
            user = self.auth_repository.find_user_by_email(email)
            if user:
                logger.info(f"Password reset requested for user: {user.id}")
            return ServiceResponse.success(message, None)
        except Exception as e:
            return service_failure(e, 'Error resetting password', 'Failed to reset password')


auth_service = AuthService()

# ============================================
# Routes
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit('5 per hour')
def register():
    """使用者註冊"""
    result, error = load_json_body(RegisterSchema)
    if error:
        return error
    return handle_service_response(auth_service.register(result))


@auth_bp.route('/login', methods=['POST'])
@limiter.limit('10 per minute')
def login():
    """使用者登入"""
    result, error = load_json_body(LoginSchema)
    if error:
        return error
    return handle_service_response(auth_service.login(result))


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    """用 refresh token 換新的 access token"""
    return handle_service_response(auth_service.refresh_token(int(get_jwt_identity())))


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    """取得當前登入使用者的資訊"""
    return handle_service_response(auth_service.get_current_user(current_user_id()))


@auth_bp.route('/change-password', methods=['POST'])
@jwt_required()
def change_password():
    """修改密碼"""
    result, error = load_json_body(ChangePasswordSchema)
    if error:
        return error
    return handle_service_response(auth_service.change_password(current_user_id(), result))


@auth_bp.route('/reset-password', methods=['POST'])
@limiter.limit('5 per hour')
def reset_password():
    """重設密碼 (不會透露 email 是否存在)"""
    data = request.get_json(silent=True) or {}
    is_valid, result = validate_request_data(ResetPasswordSchema, data, unknown=EXCLUDE)
    if not is_valid:
        return error_response(result.get('email', ['Invalid request data'])[0], 400, result)
    return handle_service_response(auth_service.reset_password(result['email']))


@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    """
    登出

    JWT 是 stateless 的,前端把 token 刪掉即可
    """
    logger.info(f"User logged out: {current_user_id()}")
    return handle_service_response(ServiceResponse.success('Logout successful', None))
