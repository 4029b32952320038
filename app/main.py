"""
Server entrypoint: `python -m app.main` or `uvicorn app.main:app`
"""
import uvicorn
from app.core.app import create_app
from app.core.config import settings

app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT, reload=settings.DEBUG)
