"""
shared/utils/errors.py
Domain exceptions raised below the HTTP layer.
main.py maps them to responses; routes keep raising HTTPException
for 400/401/404 the usual way.
"""


class UpstreamFailure(Exception):
    """An external collaborator (moderation, generator) failed."""

    service: str = "upstream"

    def __init__(self, message: str = "", *, service: str | None = None):
        super().__init__(message or f"{service or self.service} call failed")
        if service:
            self.service = service


class ModerationUnavailable(UpstreamFailure):
    """Moderation classifier failed while the gate is configured to fail closed."""

    service = "moderation"


class GuidanceGenerationError(UpstreamFailure):
    """The guidance generator failed or returned nothing usable."""

    service = "guidance"
