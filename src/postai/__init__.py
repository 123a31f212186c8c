"""POSTAI — conversational exploration of Swagger/OpenAPI described HTTP APIs."""

__version__ = "0.1.0"
