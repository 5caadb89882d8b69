AUTH_ACCOUNT_COLLECTION = "auth_accounts"
AUTH_SESSION_COLLECTION = "auth_sessions"
AUTH_USER_COLLECTION = "auth_users"

SESSION_EXPIRES_IN_SECONDS = 60 * 60 * 24 * 7  # 7 days
SESSION_UPDATE_AGE_SECONDS = 60 * 60 * 24  # 1 day
OAUTH_STATE_TTL_SECONDS = 10 * 60

COOKIE_PREFIX = "inkwell-auth"
TRUSTED_PROVIDERS = ("google", "github")
