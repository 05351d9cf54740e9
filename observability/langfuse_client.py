# observability/langfuse_client.py
from dotenv import load_dotenv
from langfuse import get_client

load_dotenv(".venv/.env")
# 1 global instance for whole system; LANGFUSE_TRACING_ENABLED=false turns it into a no-op
langfuse = get_client()
