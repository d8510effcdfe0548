from flask import jsonify, request
from flask_jwt_extended import get_jwt_identity
from marshmallow import ValidationError, EXCLUDE
from datetime import timezone
from errors import AppError
from models import db
import logging

logger = logging.getLogger(__name__)

# ============================================
# Service Response (統一回應格式)
# ============================================

class ServiceResponse:
    """
    每個 service 方法的回傳值

    JSON 格式: {success, message, data, statusCode}
    """

    def __init__(self, success, message, data=None, status_code=200):
        self.success = success
        self.message = message
        self.data = data
        self.status_code = status_code

    @classmethod
    def success(cls, message, data=None, status_code=200):
        return cls(True, message, data, status_code)

    @classmethod
    def failure(cls, message, data=None, status_code=400):
        return cls(False, message, data, status_code)

    def to_dict(self):
        return {
            'success': self.success,
            'message': self.message,
            'data': self.data,
            'statusCode': self.status_code
        }


def handle_service_response(service_response):
    """把 ServiceResponse 轉成 Flask response"""
    return jsonify(service_response.to_dict()), service_response.status_code


def error_response(message, status_code, data=None):
    return handle_service_response(ServiceResponse.failure(message, data, status_code))


def service_failure(error, log_message, failure_message):
    """
    service 層的統一錯誤處理

    可預期的 AppError 直接帶出訊息和 status,其他錯誤一律 500
    """
    db.session.rollback()

    if isinstance(error, AppError):
        logger.warning(f"{log_message}: {error.message}")
        return ServiceResponse.failure(error.message, None, error.status_code)

    # 不要把 exception 細節洩漏給前端
    logger.error(f"{log_message}: {str(error)}", exc_info=True)
    return ServiceResponse.failure(failure_message, None, 500)

# ============================================
# Request Helpers
# ============================================

def validate_request_data(schema_class, data, **schema_kwargs):
    """
    統一的輸入驗證函數

    Returns:
        tuple: (is_valid, data_or_errors)
    """
    schema = schema_class(**schema_kwargs)
    try:
        validated_data = schema.load(data)
        return True, validated_data
    except ValidationError as err:
        return False, err.messages


def load_json_body(schema_class, **schema_kwargs):
    """
    讀取並驗證 JSON body

    Returns:
        tuple: (data, error_response) 其中一個是 None
    """
    data = request.get_json(silent=True)
    if data is None:
        return None, error_response('Request body must be JSON', 400)

    is_valid, result = validate_request_data(schema_class, data, **schema_kwargs)
    if not is_valid:
        return None, error_response('Invalid request data', 400, result)

    return result, None


def load_query_args(schema_class):
    """驗證 query string 參數 (不認得的參數直接忽略)"""
    is_valid, result = validate_request_data(schema_class, request.args.to_dict(), unknown=EXCLUDE)
    if not is_valid:
        return None, error_response('Invalid request data', 400, result)
    return result, None


def current_user_id():
    """從已驗證的 JWT 取得使用者 id"""
    return int(get_jwt_identity())

# ============================================
# 序列化輔助函數
# ============================================

def isoformat(value):
    return value.isoformat() if value else None


def naive_utc(value):
    """帶時區的 datetime 轉成 naive UTC,資料庫欄位不存時區"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def user_summary(user, with_email=True):
    if user is None:
        return None

    summary = {
        'id': user.id,
        'name': user.full_name,
    }
    if with_email:
        summary['email'] = user.email
    summary['avatar'] = user.avatar
    return summary


def serialize_user(user):
    """使用者資料 (不含密碼 hash)"""
    return {
        'id': user.id,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'email': user.email,
        'role': user.role,
        'avatar': user.avatar,
        'isActive': user.is_active,
        'createdAt': isoformat(user.created_at),
        'updatedAt': isoformat(user.updated_at)
    }
