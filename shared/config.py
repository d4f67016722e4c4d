import os
from typing import Optional
from dotenv import load_dotenv
load_dotenv(".venv/.env")

def require_env(var_name: str, default: Optional[str] = None) -> str:
    val = os.getenv(var_name)
    if not val:
        if default is None:
            raise ValueError(f"Missing required environment variable: {var_name}")
        val = default
    return val

SECRETS_DIR = require_env("SECRETS_DIR", ".secrets")
APP_ORIGIN = require_env("APP_ORIGIN", "http://localhost:5173")
LOGIN_VIEW = require_env("LOGIN_VIEW", "/login")
HOME_VIEW = require_env("HOME_VIEW", "/")

# Firebase settings are only required once something actually talks to Firebase
def firebase_database_url() -> str:
    return require_env("FIREBASE_DATABASE_URL")

def firebase_web_api_key() -> str:
    return require_env("FIREBASE_WEB_API_KEY")
