class BrowserError(Exception):
    pass


class DirectoryUnavailable(BrowserError):
    """
    The master server list could not be fetched. Ends the refresh.
    """


class ServerUnreachable(BrowserError):
    """
    A single server did not answer its info query. Only that server is dropped.
    """


class GeolocationUnavailable(BrowserError):
    pass
