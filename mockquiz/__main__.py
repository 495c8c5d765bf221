"""Run the mock quiz service with uvicorn: ``python -m mockquiz``."""

import uvicorn


def main() -> None:
    uvicorn.run("mockquiz.app.main:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()
