"""Run the API with uvicorn: ``python -m dailyhelper``.

Environment:
  HOST (default 127.0.0.1), PORT (default 8000), RELOAD ('1' to enable)
"""
import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "dailyhelper.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "0") == "1",
    )


if __name__ == "__main__":
    main()
