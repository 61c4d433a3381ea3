import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if o.strip()
]

# Guest cart session
SESSION_SECRET = os.getenv("SESSION_SECRET", SECRET_KEY)
GUEST_SESSION_TTL_MINUTES = int(os.getenv("GUEST_SESSION_TTL_MINUTES", 60 * 24))

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 10))
PASSWORD_RESET_MINUTES = int(os.getenv("PASSWORD_RESET_MINUTES", 60))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# "overwrite": guest snapshot wins on merge, "keep": persisted snapshot is kept
CART_MERGE_POLICY = os.getenv("CART_MERGE_POLICY", "overwrite").strip().lower()
# per cart line; also keeps quantities inside BSON int64
CART_MAX_QUANTITY = int(os.getenv("CART_MAX_QUANTITY", 999))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
