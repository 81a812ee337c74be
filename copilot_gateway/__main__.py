"""Run the gateway with uvicorn: `python -m copilot_gateway`."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "copilot_gateway.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
