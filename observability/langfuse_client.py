# observability/langfuse_client.py
from langfuse import get_client
from dotenv import load_dotenv

load_dotenv(".venv/.env")
# 1 global instance for the whole client process
langfuse = get_client()
