import enum

# ── Lifetimes (defaults; overridable through Settings) ───────────────────────
SESSION_EXPIRE_SECONDS: int = 86_400 * 7   # 7 days
OTP_EXPIRE_SECONDS: int = 600              # 10 minutes
OTP_MAX_ATTEMPTS: int = 3
OTP_RESEND_COOLDOWN_SECONDS: int = 60
OTP_MIN: int = 100_000
OTP_MAX: int = 999_999

# ── Lifetime password reset cap ───────────────────────────────────────────────
PASSWORD_RESET_LIFETIME_LIMIT: int = 1

# ── Revocation reasons stored on auth_sessions.revoked_reason ────────────────
REVOKED_SINGLE_DEVICE = "New device login - single device enforcement"
REVOKED_LOGOUT = "User logout"
REVOKED_BY_USER = "Revoked by user"
REVOKED_OTHER_DEVICES = "Logged out from other devices"
REVOKED_EXPIRED = "Session expired"
REVOKED_SUSPENDED = "Account suspended by administrator"
REVOKED_ACCOUNT_DELETED = "Account deleted"

DEFAULT_SUSPENSION_REASON = "Your account has been suspended by an administrator."


# ── Role carried in the session token ─────────────────────────────────────────
class Role(str, enum.Enum):
    DOCTOR = "doctor"
    PATIENT = "patient"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# ── Account collection a role lives in ───────────────────────────────────────
class UserType(str, enum.Enum):
    DOCTOR = "Doctor"
    PATIENT = "Patient"
    ADMIN = "Admin"


ROLE_USER_TYPE: dict[Role, UserType] = {
    Role.DOCTOR: UserType.DOCTOR,
    Role.PATIENT: UserType.PATIENT,
    Role.ADMIN: UserType.ADMIN,
    Role.SUPER_ADMIN: UserType.ADMIN,
}

ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


def user_type_for(role: Role | str) -> UserType:
    return ROLE_USER_TYPE[Role(role)]


# ── Professional verification (set by admins) ────────────────────────────────
class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


# ── OTP purpose ───────────────────────────────────────────────────────────────
class OTPPurpose(str, enum.Enum):
    REGISTRATION = "registration"
    LOGIN = "login"
    PASSWORD_RESET = "password-reset"


# ── Auth log actions ──────────────────────────────────────────────────────────
class AuthAction(str, enum.Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    REGISTER = "register"
    FAILED_LOGIN = "failed_login"
    OTP_VERIFICATION = "otp_verification"
    FAILED_OTP = "failed_otp"
    OTP_RESEND = "otp_resend"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    PASSWORD_RESET_SUCCESS = "password_reset_success"
    PASSWORD_RESET_FAILED = "password_reset_failed"
    PASSWORD_CHANGE = "password_change"
    ADMIN_LOGIN = "admin_login"
    FAILED_ADMIN_LOGIN = "failed_admin_login"
    ACCOUNT_DELETED = "account_deleted"


FAILED_LOGIN_ACTIONS = frozenset(
    {AuthAction.FAILED_LOGIN, AuthAction.FAILED_OTP, AuthAction.FAILED_ADMIN_LOGIN}
)


# ── Admin action log types ────────────────────────────────────────────────────
class AdminActionType(str, enum.Enum):
    USER_VERIFICATION = "user_verification"
    USER_SUSPENSION = "user_suspension"
    USER_ACTIVATION = "user_activation"
    ROLE_CHANGE = "role_change"
    ACCOUNT_DELETION = "account_deletion"
    PASSWORD_RESET = "password_reset"
    PROFILE_UPDATE = "profile_update"
    ADMIN_CREATION = "admin_creation"
