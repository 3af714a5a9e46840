# meetme/domain/errors.py
"""Error taxonomy for the compositing engine.

None of these escape the engine's public boundary: the placement controller
clamps, the preview renderer degrades to an empty surface, and the export
pipeline turns them into an ExportOutcome plus a user-facing notification.
The HTTP layer maps the remaining ones to status codes.
"""


class MeetMeError(Exception):
    """Base class for every error raised by the meetme package."""

    user_message = "Something went wrong. Please try again."


class ImageLoadError(MeetMeError):
    """A template or user image could not be fetched or decoded."""

    user_message = "Failed to load image"


class ImageTooLargeError(ImageLoadError):
    user_message = "Image too large. Please use an image under 10MB."


class ImageNotReadyError(MeetMeError):
    """Export was requested before both images were loaded."""

    user_message = "Please upload a photo first"


class LimitReachedError(MeetMeError):
    """The download-limit collaborator refused the export. Not retryable."""

    user_message = "Download limit reached for this event."

    def __init__(self, message=None):
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class ShareCancelled(MeetMeError):
    """The user dismissed the native share sheet. Never shown to the user."""


class ExportFailure(MeetMeError):
    """Rendering or PNG encoding failed. Safe to retry."""


class SessionNotFoundError(MeetMeError):
    user_message = "Editing session expired. Please upload your photo again."


class TemplateNotFoundError(MeetMeError):
    user_message = "Template not found"
