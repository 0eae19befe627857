"""
Failure kinds surfaced by the search-and-enrichment pipeline.

Every upstream failure is converted to one of these at the component
boundary; raw transport errors never reach the controller.
"""


class NavigatorError(Exception):
    """Base class for pipeline failures."""

    user_message: str = "Something went wrong. Please try again."
    # Banner errors are shown prominently; the rest are quiet guidance.
    banner: bool = True

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.user_message)
        self.detail = detail

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, str | bool]:
        return {
            "kind": self.kind,
            "message": self.user_message,
            "banner": self.banner,
        }


class UpstreamUnavailable(NavigatorError):
    """Bibliographic search could not complete (transport or status failure)."""

    user_message = "Library systems offline. Please check your connection."


class NoMatches(NavigatorError):
    """Search completed but found nothing."""

    user_message = 'Not found? Try searching for "Dune" or "1984".'
    banner = False


class InferenceUnavailable(NavigatorError):
    """Holdings inference call could not complete."""

    user_message = "Could not retrieve real-time holdings. Please try again."


class MalformedHoldingsData(NavigatorError):
    """Holdings call completed but no structured payload could be recovered."""

    user_message = "Could not parse library data. Try again."


class VisualizerFailure(NavigatorError):
    """Shelf image generation failed; the action stays available for retry."""

    user_message = "Shelf guide unavailable right now."
    banner = False
