"""Domain-specific exceptions for service layer operations.

This module provides a structured exception hierarchy with comprehensive error handling
capabilities for business operations, enabling proper error handling, logging, and
client response generation.

Architecture:
- ServiceError: Base exception with correlation ID and context support
- Category Base Classes: Domain-specific base exceptions (AuthError, BusinessError, etc.)
- Specific Exceptions: Concrete exceptions for specific business scenarios
- Error Context: Rich metadata and user-friendly message support
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union
from http import HTTPStatus


class ErrorSeverity(Enum):
    """Error severity levels for logging and monitoring."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification and handling."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    EXTERNAL_SERVICE = "external_service"
    INFRASTRUCTURE = "infrastructure"
    SYSTEM = "system"


class ServiceError(Exception):
    """Base exception for all service layer errors.
    
    Provides structured error information with correlation ID support,
    HTTP status mapping, and rich context for debugging and client responses.
    
    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for client handling
        correlation_id: Request correlation ID for tracing
        details: Additional error context (sanitized for logging)
        user_message: User-friendly message for client display
        severity: Error severity level for logging/monitoring
        category: Error category for classification
        http_status: HTTP status code for API responses
    """
    
    def __init__(
        self, 
        message: str, 
        error_code: str = "SERVICE_ERROR",
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        http_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    ):
        """Initialize service error with comprehensive context.
        
        Args:
            message: Human-readable error message for logging
            error_code: Machine-readable error code for client handling
            correlation_id: Request correlation ID for tracing
            details: Additional error context (sanitized for logging)
            user_message: User-friendly message for client display
            severity: Error severity level
            category: Error category for classification
            http_status: HTTP status code for API responses
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.correlation_id = correlation_id
        self.details = details or {}
        self.user_message = user_message or message
        self.severity = severity
        self.category = category
        self.http_status = http_status

    def to_dict(self, include_sensitive: bool = False) -> Dict[str, Any]:
        """Convert exception to dictionary for logging or client response.
        
        Args:
            include_sensitive: Whether to include sensitive details
            
        Returns:
            Dictionary representation of the error
        """
        result = {
            "error_code": self.error_code,
            "message": self.user_message,
            "severity": self.severity.value,
            "category": self.category.value,
            "http_status": self.http_status.value
        }
        
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
            
        if include_sensitive and self.details:
            result["details"] = self.details
            result["internal_message"] = self.message
            
        return result

    def __str__(self) -> str:
        """String representation for logging."""
        return f"{self.error_code}: {self.message}"


# =============================================================================
# AUTHENTICATION & AUTHORIZATION ERRORS
# =============================================================================

class AuthError(ServiceError):
    """Base class for authentication and authorization errors."""
    
    def __init__(
        self,
        message: str,
        error_code: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        http_status: HTTPStatus = HTTPStatus.UNAUTHORIZED
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            correlation_id=correlation_id,
            details=details,
            user_message=user_message,
            severity=severity,
            category=ErrorCategory.AUTHENTICATION,
            http_status=http_status
        )


class AuthenticationError(AuthError):
    """Authentication failed."""
    
    def __init__(
        self, 
        message: str = "Authentication failed",
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="AUTH_FAILED",
            correlation_id=correlation_id,
            details=details,
            user_message="Authentication failed. Please check your credentials."
        )


class UserInactiveError(AuthError):
    """User account is inactive."""
    
    def __init__(
        self, 
        user_id: int,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message="User account is inactive",
            error_code="USER_INACTIVE",
            correlation_id=correlation_id,
            details={"user_id": user_id},
            user_message="Your account is inactive. Please contact support.",
            http_status=HTTPStatus.FORBIDDEN
        )


class AuthorizationError(AuthError):
    """Authenticated user lacks the privileges for the operation."""
    
    def __init__(
        self,
        required: str,
        user_id: Optional[int] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Operation requires {required} privileges",
            error_code="INSUFFICIENT_PRIVILEGES",
            correlation_id=correlation_id,
            details={"required": required, "user_id": user_id},
            user_message="You don't have permission to perform this operation.",
            http_status=HTTPStatus.FORBIDDEN
        )


# =============================================================================
# BUSINESS DOMAIN ERRORS
# =============================================================================

class BusinessError(ServiceError):
    """Base class for business domain errors."""
    
    def __init__(
        self,
        message: str,
        error_code: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        http_status: HTTPStatus = HTTPStatus.BAD_REQUEST
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            correlation_id=correlation_id,
            details=details,
            user_message=user_message,
            severity=severity,
            category=ErrorCategory.BUSINESS_RULE,
            http_status=http_status
        )


class ResourceNotFoundError(BusinessError):
    """Base class for resource not found errors."""
    
    def __init__(
        self,
        resource_type: str,
        resource_id: Union[int, str],
        user_id: Optional[int] = None,
        correlation_id: Optional[str] = None
    ):
        details = {"resource_type": resource_type, "resource_id": resource_id}
        if user_id is not None:
            details["user_id"] = user_id
            
        super().__init__(
            message=f"{resource_type} not found or access denied",
            error_code=f"{resource_type.upper()}_NOT_FOUND",
            correlation_id=correlation_id,
            details=details,
            user_message=f"{resource_type} not found or you don't have permission to access it.",
            http_status=HTTPStatus.NOT_FOUND
        )


# =============================================================================
# RECURRING SCAN ERRORS
# =============================================================================

class RecurringScanError(BusinessError):
    """Recurring scan settings errors."""
    pass


class RecurringScanNotAvailableError(RecurringScanError):
    """The user's plan does not include the requested scan capability."""
    
    def __init__(
        self,
        plan: str,
        feature: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Plan '{plan}' does not include {feature}",
            error_code="RECURRING_SCANS_NOT_AVAILABLE",
            correlation_id=correlation_id,
            details={"plan": plan, "feature": feature},
            user_message="Recurring scans are not available for your subscription tier. Upgrade to Indie or higher.",
            severity=ErrorSeverity.LOW,
            http_status=HTTPStatus.FORBIDDEN
        )


# =============================================================================
# BACKGROUND PROCESSING ERRORS
# =============================================================================

class JobError(ServiceError):
    """Failure while executing an analysis job.
    
    The pool manager decides between a retry and a terminal failure from
    the ``retryable`` flag.
    """
    
    retryable = False
    
    def __init__(
        self,
        message: str,
        error_code: str = "JOB_FAILED",
        job_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        if job_id is not None:
            details["job_id"] = job_id
        super().__init__(
            message=message,
            error_code=error_code,
            correlation_id=correlation_id,
            details=details,
            user_message="The analysis could not be completed.",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.SYSTEM,
            http_status=HTTPStatus.INTERNAL_SERVER_ERROR
        )
        self.job_id = job_id


class RetryableJobError(JobError):
    """Transient failure; the job is eligible for another attempt."""
    
    retryable = True
    
    def __init__(self, message: str, job_id: Optional[str] = None, correlation_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "JOB_FAILED_RETRYABLE", job_id, correlation_id, details)


class PermanentJobError(JobError):
    """Failure that another attempt cannot fix."""
    
    def __init__(self, message: str, job_id: Optional[str] = None, correlation_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "JOB_FAILED_PERMANENT", job_id, correlation_id, details)


class SchedulerError(ServiceError):
    """Recurring scan pass could not run."""
    
    def __init__(
        self,
        message: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SCHEDULER_FAILED",
            correlation_id=correlation_id,
            details=details,
            user_message="Failed to process recurring scans.",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.SYSTEM,
            http_status=HTTPStatus.INTERNAL_SERVER_ERROR
        )


class InvalidBackgroundActionError(ServiceError):
    """Unknown control action sent to the background task manager."""
    
    def __init__(
        self,
        action: str,
        valid_actions: List[str],
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Invalid action: {action}",
            error_code="INVALID_ACTION",
            correlation_id=correlation_id,
            details={"action": action, "valid_actions": valid_actions},
            user_message=f"Invalid action. Valid actions: {', '.join(valid_actions)}",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            http_status=HTTPStatus.BAD_REQUEST
        )
        self.valid_actions = valid_actions


# =============================================================================
# FILE & INFRASTRUCTURE ERRORS
# =============================================================================

class InfrastructureError(ServiceError):
    """Base class for infrastructure-related errors."""
    
    def __init__(
        self,
        message: str,
        error_code: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        http_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            correlation_id=correlation_id,
            details=details,
            user_message=user_message or "A system error occurred. Please try again later.",
            severity=severity,
            category=ErrorCategory.INFRASTRUCTURE,
            http_status=http_status
        )


class BackgroundTasksUnavailableError(InfrastructureError):
    """Background task manager is not attached to this process."""
    
    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__(
            message="Background task manager is not configured",
            error_code="BACKGROUND_TASKS_UNAVAILABLE",
            correlation_id=correlation_id,
            user_message="Background processing is not available on this instance.",
            http_status=HTTPStatus.SERVICE_UNAVAILABLE
        )


class ModelQueryError(InfrastructureError):
    """Language model call failed after the client's own retries."""
    
    def __init__(
        self,
        provider: str,
        model: str,
        message: str,
        retryable: bool = True,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"{provider} model {model} failed: {message}",
            error_code="MODEL_QUERY_FAILED",
            correlation_id=correlation_id,
            details={"provider": provider, "model": model, "retryable": retryable},
            severity=ErrorSeverity.MEDIUM,
            http_status=HTTPStatus.BAD_GATEWAY
        )
        self.category = ErrorCategory.EXTERNAL_SERVICE
        self.provider = provider
        self.model = model
        self.retryable = retryable


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def create_error_response(
    error: ServiceError,
    include_details: bool = False
) -> Dict[str, Any]:
    """Create standardized error response dictionary.
    
    Args:
        error: ServiceError instance
        include_details: Whether to include sensitive details
        
    Returns:
        Standardized error response dictionary
    """
    return error.to_dict(include_sensitive=include_details)


def get_http_status_for_error(error: Exception) -> HTTPStatus:
    """Get appropriate HTTP status code for an exception.
    
    Args:
        error: Exception instance
        
    Returns:
        Appropriate HTTP status code
    """
    if isinstance(error, ServiceError):
        return error.http_status
    
    # Default mappings for non-ServiceError exceptions
    error_mappings = {
        ValueError: HTTPStatus.BAD_REQUEST,
        TypeError: HTTPStatus.BAD_REQUEST,
        KeyError: HTTPStatus.NOT_FOUND,
        AttributeError: HTTPStatus.INTERNAL_SERVER_ERROR,
        NotImplementedError: HTTPStatus.NOT_IMPLEMENTED,
    }
    
    return error_mappings.get(type(error), HTTPStatus.INTERNAL_SERVER_ERROR)
