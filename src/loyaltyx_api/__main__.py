import uvicorn

from loyaltyx_api.core.settings import settings


def main() -> None:
    uvicorn.run(
        "loyaltyx_api.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()
