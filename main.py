# main.py: process entrypoint for `uvicorn main:app`
from arvocap_chat_api import app  # noqa: F401
