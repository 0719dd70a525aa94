"""FastAPI REST API for hookrelay.

Exposes webhook management, delivery history and manual test pings
under /api/v1/projects/{project_id}/webhooks.

Example:
    ```python
    import uvicorn
    from hookrelay.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn hookrelay.api:app --reload
    ```
"""

from .app import app, create_app
from .router import router

__all__ = [
    "app",
    "create_app",
    "router",
]
