"""HTTP client utilities for talking to a pwdi server.

Security notes:
- Treat server responses, including pulled bundles, as untrusted input.
"""

from .http import HttpResponse, PwdiClientError, PwdiHttpClient  # noqa: F401
from .transfer import TransferResult, pull_directory, push_directory  # noqa: F401
