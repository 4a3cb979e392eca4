"""pwdi HTTP layer.

FastAPI apps exposing the core: the bundle server (pull/push a whole
directory) and the simpler file drop server.
"""

from .files import create_files_app  # noqa: F401
from .server import create_app  # noqa: F401
