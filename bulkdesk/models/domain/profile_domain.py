# models/domain/profile_domain.py
"""
Zoho Desk credential profile domain model.

Profiles are owned by the profiles.json file and are read-only to the
service: a job holds the same Profile instance from start to finish.
"""

from pydantic import BaseModel, ConfigDict, Field

# Fields that must never leave the server
CREDENTIAL_FIELDS = {"client_id", "client_secret", "refresh_token"}


class Profile(BaseModel):
    """One named set of Zoho Desk credentials and org/department context."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    profile_name: str = Field(..., alias="profileName", min_length=1)
    org_id: str = Field(..., alias="orgId")
    default_department_id: str = Field(..., alias="defaultDepartmentId")
    from_email_address: str | None = Field(default=None, alias="fromEmailAddress")
    mail_reply_address_id: str | None = Field(default=None, alias="mailReplyAddressId")

    # Credential material for the refresh-token grant
    client_id: str = Field(..., alias="clientId")
    client_secret: str = Field(..., alias="clientSecret")
    refresh_token: str = Field(..., alias="refreshToken")

    def can_send_direct_reply(self) -> bool:
        return bool(self.from_email_address)

    def public_view(self) -> dict:
        """Profile as exposed to the dashboard, credentials stripped."""
        return self.model_dump(by_alias=True, exclude=CREDENTIAL_FIELDS, exclude_none=True)
