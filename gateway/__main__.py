import uvicorn

from gateway.core.config import Config


if __name__ == "__main__":
    uvicorn.run("gateway:app", host="0.0.0.0", port=Config.PORT, log_level=Config.LOG_LEVEL.lower())
