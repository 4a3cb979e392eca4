"""Core of pwdi: time-windowed tokens and directory bundles.

Both halves are independent of the HTTP layer and can be used directly.
"""

from .bundler import Bundler, SharedBundler  # noqa: F401
from .errors import BundleError, BundleLimitError, UnsafeBundleEntryError  # noqa: F401
from .ignore import IGNORE_FILE_NAME, IgnoreRules, load_ignore_rules, walk_files  # noqa: F401
from .token import (  # noqa: F401
    WINDOW_SECONDS,
    current_window,
    generate_secret,
    salt_text,
    salt_timed,
    verify_timed,
)
