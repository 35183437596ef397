"""Server middleware registered by name at server init"""

from appserver.middleware.base import ServerMiddleware
from appserver.middleware.favicon import Favicon
from appserver.middleware.request_logger import RequestLogger
from appserver.middleware.request_parser import RequestParser
from appserver.middleware.routes import Routes
from appserver.middleware.session import SessionMiddleware
from appserver.middleware.static_files import StaticFilesRegistrar

__all__ = [
    "ServerMiddleware",
    "Favicon",
    "RequestLogger",
    "RequestParser",
    "Routes",
    "SessionMiddleware",
    "StaticFilesRegistrar",
]
