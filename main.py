import uvicorn

from orgtenancy.config import settings
from orgtenancy.main import configure_logging, create_app

configure_logging()

app = create_app()


@app.get("/", tags=["Root"])
async def root():
    return {"message": f"Welcome to {settings.app_name}"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
