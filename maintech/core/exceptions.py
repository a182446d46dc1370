"""Custom exceptions for the application.

Every error that reaches a client carries a short French message and a
stable ``error_code`` so that clients can branch on the kind of failure
rather than on the message text.
"""


class BaseAPIException(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = None,
        details: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationError(BaseAPIException):
    """Authentication error."""

    def __init__(
        self,
        message: str = "Erreur d'authentification",
        error_code: str = "AUTHENTICATION_ERROR",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=401,
            error_code=error_code,
            details=details
        )


class MissingTokenError(AuthenticationError):
    """No bearer token or refresh cookie was presented."""

    def __init__(self, message: str = "Accès non autorisé, token manquant", details: dict = None):
        super().__init__(message=message, error_code="MISSING_TOKEN", details=details)


class InvalidTokenError(AuthenticationError):
    """Bearer token failed signature or expiry verification."""

    def __init__(self, message: str = "Token invalide", details: dict = None):
        super().__init__(message=message, error_code="INVALID_TOKEN", details=details)


class InvalidCredentialsError(AuthenticationError):
    """Password does not match the stored hash."""

    def __init__(self, message: str = "Mot de passe incorrect.", details: dict = None):
        super().__init__(message=message, error_code="INVALID_CREDENTIALS", details=details)


class AuthorizationError(BaseAPIException):
    """Authorization error."""

    def __init__(
        self,
        message: str = "Forbidden",
        error_code: str = "AUTHORIZATION_ERROR",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=403,
            error_code=error_code,
            details=details
        )


class AccountNotApprovedError(AuthorizationError):
    """Account exists but its approval code was never confirmed."""

    def __init__(
        self,
        message: str = "Compte non approuvé. Veuillez saisir le code reçu par e-mail.",
        details: dict = None
    ):
        super().__init__(message=message, error_code="ACCOUNT_NOT_APPROVED", details=details)


class InvalidRefreshTokenError(AuthorizationError):
    """Refresh token failed verification."""

    def __init__(self, message: str = "Refresh Token invalide", details: dict = None):
        super().__init__(message=message, error_code="INVALID_REFRESH_TOKEN", details=details)


class RefreshTokenNotRecognizedError(AuthorizationError):
    """Refresh token is valid but no live session holds it."""

    def __init__(
        self,
        message: str = "Utilisateur non trouvé pour ce token de rafraîchissement",
        details: dict = None
    ):
        super().__init__(
            message=message,
            error_code="REFRESH_TOKEN_NOT_RECOGNIZED",
            details=details
        )


class ValidationError(BaseAPIException):
    """Validation error."""

    def __init__(
        self,
        message: str = "Données invalides",
        error_code: str = "VALIDATION_ERROR",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=422,
            error_code=error_code,
            details=details
        )


class InvalidApprovalCodeError(BaseAPIException):
    """Approval code does not match the one sent by email."""

    def __init__(self, message: str = "Code d'approbation invalide.", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_APPROVAL_CODE",
            details=details
        )


class InvalidResetTokenError(BaseAPIException):
    """Password reset token is unknown, malformed, used or expired."""

    def __init__(self, message: str = "Token invalide ou expiré", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_RESET_TOKEN",
            details=details
        )


class NotFoundError(BaseAPIException):
    """Resource not found error."""

    def __init__(
        self,
        message: str = "Ressource introuvable",
        error_code: str = "NOT_FOUND_ERROR",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=404,
            error_code=error_code,
            details=details
        )


class UserNotFoundError(NotFoundError):
    """No user matches the given email or id."""

    def __init__(self, message: str = "Utilisateur non trouvé.", details: dict = None):
        super().__init__(message=message, error_code="USER_NOT_FOUND", details=details)


class ConflictError(BaseAPIException):
    """Resource conflict error."""

    def __init__(
        self,
        message: str = "Conflit de ressource",
        status_code: int = 409,
        error_code: str = "CONFLICT_ERROR",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details
        )


class EmailTakenError(ConflictError):
    """Email already belongs to another account.

    Reported as 400 to keep the status the frontend already handles.
    """

    def __init__(self, message: str = "Cet email est déjà utilisé.", details: dict = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="EMAIL_TAKEN",
            details=details
        )


class RateLimitExceeded(BaseAPIException):
    """Rate limit exceeded error."""

    def __init__(self, message: str = "Trop de requêtes", details: dict = None):
        super().__init__(
            message=message,
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details=details
        )


class ExternalServiceError(BaseAPIException):
    """External service error."""

    def __init__(self, message: str = "Erreur du service externe", details: dict = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="EXTERNAL_SERVICE_ERROR",
            details=details
        )


class ConfigurationError(BaseAPIException):
    """Configuration error."""

    def __init__(
        self,
        message: str = "Erreur de configuration",
        error_code: str = "CONFIGURATION_ERROR",
        details: dict = None
    ):
        super().__init__(
            message=message,
            status_code=503,
            error_code=error_code,
            details=details
        )
