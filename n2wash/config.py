import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./n2wash.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Subdomain routing
# Public booking:  <slug>.n2wash.com
# Tenant admin:    <slug>.admin.n2wash.com
# Super admin:     super.admin.n2wash.com
BASE_DOMAIN = os.getenv("BASE_DOMAIN", "n2wash.com").lower()
SUPER_ADMIN_SUBDOMAIN = os.getenv("SUPER_ADMIN_SUBDOMAIN", "super")

# Frontend base URL used in SMS links (my reservation page)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# SMSAPI Configuration - when the token is missing SMS run in dev mode (logged, not sent)
SMSAPI_TOKEN = os.getenv("SMSAPI_TOKEN")
SMSAPI_URL = os.getenv("SMSAPI_URL", "https://api.smsapi.pl/sms.do")
SMS_SENDER_NAME = os.getenv("SMS_SENDER_NAME")
DEFAULT_PHONE_COUNTRY = os.getenv("DEFAULT_PHONE_COUNTRY", "PL")

# Verification codes for public booking
SMS_CODE_TTL_HOURS = int(os.getenv("SMS_CODE_TTL_HOURS", "24"))

# Cloudflare R2 Configuration
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "n2wash")

# Web Push (VAPID) - raw base64url keys: 32 byte private scalar, 65 byte uncompressed public point
VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY")
VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY")
VAPID_EMAIL = os.getenv("VAPID_EMAIL", "mailto:admin@n2wash.com")

# Client-side error tracking DSN, served to the frontend by /config/public
SENTRY_DSN = os.getenv("SENTRY_DSN")

# Rate limiting for public endpoints (SMS codes)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
SMS_CODE_RATE_LIMIT = int(os.getenv("SMS_CODE_RATE_LIMIT", "5"))
SMS_CODE_RATE_WINDOW_SECONDS = int(os.getenv("SMS_CODE_RATE_WINDOW_SECONDS", "3600"))

# Comma separated extra CORS origins; tenant subdomains of BASE_DOMAIN are always allowed
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", FRONTEND_URL).split(",") if o.strip()]
