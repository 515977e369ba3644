"""
Profile store backed by profiles.json.

The file is re-read on every lookup so profile edits take effect without a
restart. Profiles are never written from here.
"""

from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import ProfileValidationError

logger = get_logger(__name__)

_profiles_adapter = TypeAdapter(list[Profile])

PROFILE_NOT_FOUND_MESSAGE = "Profile not found."


class ProfileStoreError(Exception):
    """profiles.json is missing, unreadable or malformed."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class ProfileStore:
    """Read-only access to the configured credential profiles."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load_all(self) -> list[Profile]:
        """
        Load and validate every profile.

        Raises:
            ProfileStoreError: If the file cannot be read or parsed
        """
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            logger.error("Could not read profiles file", path=str(self.path), error=str(e))
            raise ProfileStoreError(f"Could not load profiles: {e}", path=self.path) from e

        try:
            return _profiles_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error(
                "Profiles file is invalid",
                path=str(self.path),
                error_count=e.error_count(),
            )
            raise ProfileStoreError(f"Invalid profiles file: {e}", path=self.path) from e

    def get(self, profile_name: str) -> Profile | None:
        for profile in self.load_all():
            if profile.profile_name == profile_name:
                return profile
        return None

    def require(self, profile_name: str | None) -> Profile:
        """
        Resolve a profile by name.

        Raises:
            ProfileValidationError: If no name was given or no profile matches
            ProfileStoreError: If the profiles file itself is unusable
        """
        if not profile_name:
            raise ProfileValidationError("Missing profile.")

        profile = self.get(profile_name)
        if profile is None:
            logger.warning("Profile not found", profile_name=profile_name)
            raise ProfileValidationError(PROFILE_NOT_FOUND_MESSAGE)
        return profile

    def public_profiles(self) -> list[dict]:
        """All profiles with credential material stripped."""
        return [profile.public_view() for profile in self.load_all()]
