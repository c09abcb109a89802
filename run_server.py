"""Convenience launcher so you can just: python run_server.py
Resolves import path confusion (ModuleNotFoundError: app)
"""
import os

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.app.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
    )
