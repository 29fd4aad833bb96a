class HubSpotError(Exception):
    """Raised when a HubSpot CRM request fails."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code
