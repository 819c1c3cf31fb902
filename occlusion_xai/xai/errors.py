# occlusion_xai/xai/errors.py

# Error Taxonomy For Classification And Scanning
# Service Errors Keep The Status Codes Reported By Visual Recognition Backends

from __future__ import annotations

from typing import Dict, Optional, Type


class OcclusionXAIError(Exception):
    pass


class ClassificationMiss(OcclusionXAIError):
    """Classifier answered, but not with a usable score for the target class."""


class BaselineUnavailableError(OcclusionXAIError):
    """The unmasked image produced no confidence, so the scan is meaningless."""


class ServiceError(OcclusionXAIError):
    code: Optional[int] = None
    category = "generic"

    def __init__(self, message: str = "", code: Optional[int] = None, model_id: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code
        self.model_id = model_id

    @classmethod
    def from_code(cls, code: int, message: str = "", model_id: Optional[str] = None) -> "ServiceError":
        err_cls = _BY_CODE.get(code, ServiceError)
        return err_cls(message, code=code, model_id=model_id)


class AuthenticationError(ServiceError):
    code = 0
    category = "auth"


class ModelNotFoundError(ServiceError):
    code = 404
    category = "not_found"


class ServerError(ServiceError):
    code = 500
    category = "server"


class ConnectivityError(ServiceError):
    code = -1009
    category = "connectivity"


_BY_CODE: Dict[int, Type[ServiceError]] = {
    AuthenticationError.code: AuthenticationError,
    ModelNotFoundError.code: ModelNotFoundError,
    ServerError.code: ServerError,
    ConnectivityError.code: ConnectivityError,
}


def describe_service_error(err: ServiceError) -> str:
    # User-Facing Message Per Category
    if isinstance(err, AuthenticationError):
        return "Please check your classifier credentials and try again."
    if isinstance(err, ModelNotFoundError):
        return f'We couldn\'t find the model with ID: "{err.model_id}"'
    if isinstance(err, ServerError):
        return "Internal server error. Please try again."
    if isinstance(err, ConnectivityError):
        return "Please check your internet connection."
    return "Please try again."
