"""Restyle Studio — FastAPI REST API layer.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
validation
    Image upload and prompt validation.
gallery_store
    File-backed gallery records, share links, edit history, and the
    gallery query engine.
"""
