"""Thin API launcher.

This is the uvicorn entrypoint. All application logic lives in the tutorlink package.
Run with: uvicorn main:app --reload

The app instance is created here (not in tutorlink.app) so that importing
create_app does not require the environment to be configured.
"""

from tutorlink.app import add_request_id_middleware, create_app

app = create_app()
# Add request-id middleware LAST so it runs FIRST (outermost)
add_request_id_middleware(app)

__all__ = ["app"]
