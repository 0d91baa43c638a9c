# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
# FastAPI uses them for request body validation (automatic 422 errors)
# and for the OpenAPI documentation at /docs.
#
# DESIGN DECISION: The request is not the ProfilingTarget itself.
# The target carries an id and a consent timestamp that the server
# assigns; `to_target()` stamps both so a client can never backdate
# consent.
# =============================================================================

from datetime import UTC, date, datetime

from pydantic import BaseModel, ConfigDict, Field

from profiler.models.target import ProfilingTarget


class ProfileRequest(BaseModel):
    """
    Request body for POST /profile — profile one consenting subject.

    Example:
        {
            "first_name": "Jane",
            "last_name": "Doe",
            "city": "Lyon",
            "linkedin_url": "https://www.linkedin.com/in/janedoe",
            "consent": true
        }
    """

    first_name: str = Field(..., min_length=1, max_length=200)
    last_name: str = Field(..., min_length=1, max_length=200)
    birth_date: date | None = None
    city: str | None = Field(default=None, max_length=200)

    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=40)

    linkedin_url: str | None = Field(default=None, max_length=2000)
    facebook_url: str | None = Field(default=None, max_length=2000)
    instagram_url: str | None = Field(
        default=None,
        max_length=2000,
        description="Profile URL or bare handle",
    )
    website_url: str | None = Field(default=None, max_length=2000)

    # Runs are refused without it (403)
    consent: bool = Field(
        default=False,
        description="The subject agreed to be profiled from public sources.",
    )

    notes: str | None = Field(
        default=None,
        max_length=5000,
        description="Free text; URLs found here are fetched as extra sources.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "first_name": "Jane",
                    "last_name": "Doe",
                    "city": "Lyon",
                    "linkedin_url": "https://www.linkedin.com/in/janedoe",
                    "instagram_url": "janedoe",
                    "consent": True,
                },
            ]
        }
    )

    def to_target(self) -> ProfilingTarget:
        data = self.model_dump()
        data["consent_at"] = datetime.now(UTC) if self.consent else None
        return ProfilingTarget(**data)
