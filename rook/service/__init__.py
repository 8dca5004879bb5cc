"""HTTP service exposing the rook route table."""

from .app import MAX_BODY_LENGTH, create_app, guard_content_length, run_service

__all__ = ["MAX_BODY_LENGTH", "create_app", "guard_content_length", "run_service"]
