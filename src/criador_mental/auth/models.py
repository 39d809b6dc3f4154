"""
Authentication Models

Strongly-typed identity used throughout the service after JWT verification.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class UserContext(BaseModel):
    """
    Authenticated user derived from a verified identity-provider token.

    `user_id` (the token subject) is the owner key of every project.
    """

    user_id: str = Field(
        ...,
        min_length=1,
        description="Stable user identifier (token 'sub' claim).",
    )

    email: Optional[str] = Field(
        default=None,
        description="E-mail address reported by the identity provider.",
    )

    scopes: List[str] = Field(
        default_factory=list,
        description="Roles or scopes granted to the user.",
    )

    model_config = ConfigDict(
        frozen=True,                # Makes UserContext immutable after creation
        extra="forbid",             # Prevents claim injection via unexpected fields
    )
