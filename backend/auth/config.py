import os
from dotenv import load_dotenv

load_dotenv()

# Tokens are issued by the identity service; this service only verifies them
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

HR_ROLES = ("admin", "hr")


def validate_auth_config() -> None:
    if not JWT_SECRET_KEY:
        raise RuntimeError(
            "Missing required environment variable: JWT_SECRET_KEY. "
            "Please set it in your .env file."
        )
