"""Error handling utilities."""

from typing import Optional


class UrbanNestError(Exception):
    """Base exception for the UrbanNest client core."""
    pass


class ConfigError(UrbanNestError):
    """Required configuration is missing."""
    pass


class SupabaseError(UrbanNestError):
    """Supabase operation error."""
    pass


class SchemaMismatchError(SupabaseError):
    """The remote table is missing a column the client writes."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column

    @property
    def remediation(self) -> str:
        target = f"'{self.column}'" if self.column else "a required column"
        return (
            f"The listings table is missing {target}. Ask the project operator to "
            "apply the latest database schema in the Supabase SQL editor, then try again."
        )


class ListingValidationError(UrbanNestError):
    """Listing form failed local validation."""
    pass


class AuthorizationError(UrbanNestError):
    """Current user may not act on this resource."""
    pass


class AuthRequiredError(AuthorizationError):
    """Action needs a signed-in user."""
    pass


class GenerationError(UrbanNestError):
    """LLM text generation error."""
    pass
