class AnalyticsError(ValueError):
    """Input that points to an upstream data-integrity bug."""


class NonMonotonicTimestampError(AnalyticsError):
    pass


class InvalidTeamSizeError(AnalyticsError):
    pass


class InvalidRatingError(AnalyticsError):
    pass


class InconsistentChangeError(AnalyticsError):
    pass
