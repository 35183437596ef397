"""appserver - session bridge and middleware lifecycle for FastAPI servers"""

__version__ = "1.0.0"
