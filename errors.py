# ============================================
# 應用層錯誤
# repository 拋出,service 轉成對應的 HTTP status
# ============================================


class AppError(Exception):
    """所有可預期錯誤的基底類別"""
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class BadRequestError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409
