"""Run uvicorn. Usage: python run.py."""
import uvicorn

from pdfchat.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "pdfchat.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
    )
