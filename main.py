"""
CodeQuest Arena - Main entry point.
This file imports and runs the FastAPI application from the codequest package.
"""
import os

import uvicorn

from codequest.main import app

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
