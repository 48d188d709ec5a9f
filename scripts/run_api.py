"""Serve the API with uvicorn.

API_HOST / API_PORT may come from the environment or the local .env.
"""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn
from dotenv import load_dotenv


def main() -> None:
    load_dotenv()
    host = os.environ.get("API_HOST", "0.0.0.0")
    port = int(os.environ.get("API_PORT", "8000"))
    # factory=True: config (and the JWT secret check) is loaded when the server starts.
    uvicorn.run("lens_manager.api.server:create_app", factory=True, host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
