import os

# Environment
DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGODB_URI")
DATABASE_NAME = os.getenv("DATABASE_NAME", "photo_studio")
SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-secret")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@omikoz.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
PORT = int(os.getenv("PORT", "3000"))
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join("public", "uploads"))

# Connection policy
CONNECT_MAX_RETRIES = 3
CONNECT_RETRY_DELAY = 2.0
SERVER_SELECTION_TIMEOUT_MS = 5000
SOCKET_TIMEOUT_MS = 45000
MAX_POOL_SIZE = 10
