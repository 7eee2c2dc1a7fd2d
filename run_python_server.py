#!/usr/bin/env python3
"""
Run the Bundle Rule Admin API under uvicorn from a source checkout.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))


def main() -> None:
    import uvicorn

    import settings

    dev = settings.ENVIRONMENT == "development"
    print(f"🚀 Bundle Rule Admin on {settings.HOST}:{settings.PORT} ({settings.ENVIRONMENT})")
    print(f"🔗 Bundle backend: {settings.BUNDLE_API_BASE_URL}")
    print(f"📖 Docs: http://{settings.HOST}:{settings.PORT}/api/docs")
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=dev, log_level="debug" if dev else "info")


if __name__ == "__main__":
    main()
