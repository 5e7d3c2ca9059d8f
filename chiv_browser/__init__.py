from chiv_browser.errors import (
    BrowserError,
    DirectoryUnavailable,
    GeolocationUnavailable,
    ServerUnreachable,
)
from chiv_browser.models import FilterCriteria, GameType, Perspective, ServerRecord

__version__ = "0.1.0"
