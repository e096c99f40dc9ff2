"""Personality profile registry loaded from YAML."""

import logging
import yaml
from pathlib import Path
from typing import Dict, Optional, Union
from pydantic import ValidationError

from schemas.personality import PersonalityProfile, default_profile

logger = logging.getLogger(__name__)


class ProfileRegistry:
    """Personality profiles keyed by user id, validated when loaded."""

    def __init__(self, profiles: Optional[Dict[str, PersonalityProfile]] = None):
        self.profiles = dict(profiles or {})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ProfileRegistry":
        """
        Load profiles from a YAML mapping of user id to profile fields.

        Fields missing from an entry take the default profile's values.

        Args:
            path: Path to the YAML file

        Returns:
            ProfileRegistry

        Raises:
            ValueError: If the file is not a mapping or an entry is invalid
        """
        with open(path, 'r') as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ValueError(f"Personality file {path} must contain a mapping of user id to profile")

        base = default_profile().model_dump()
        profiles = {}
        for user_id, fields in raw.items():
            if not isinstance(fields, dict):
                raise ValueError(f"Profile for {user_id} must be a mapping")
            try:
                profiles[str(user_id)] = PersonalityProfile(**{**base, **fields})
            except ValidationError as e:
                raise ValueError(f"Invalid personality profile for {user_id}: {e}") from e

        logger.info(f"Loaded {len(profiles)} personality profiles from {path}")
        return cls(profiles)

    def get(self, user_id: str) -> PersonalityProfile:
        """Profile for a user, or the default profile when none is configured."""
        profile = self.profiles.get(user_id)
        if profile is None:
            return default_profile()
        return profile.model_copy(deep=True)

    def set(self, user_id: str, profile: PersonalityProfile):
        self.profiles[user_id] = profile

    def __contains__(self, user_id: str) -> bool:
        return user_id in self.profiles

    def __len__(self) -> int:
        return len(self.profiles)
