"""
Web application package for the Ruthless chess service.

Provides a FastAPI REST API over the built-in opponent, the engine gateway
and the analysis pipeline. Run with: uvicorn web.app:app
"""
