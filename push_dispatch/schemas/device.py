"""
Household Push Dispatch: Device Registration Schemas
====================================================

What:  Request/response bodies for POST /devices and DELETE /devices.
Who:   The mobile client, after it obtains or refreshes its FCM token.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Platform = Literal["android", "ios", "web"]


class DeviceRegistrationRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    token: str = Field(min_length=1, max_length=4096, description="FCM registration token")
    platform: Optional[Platform] = None


class DeviceRemovalRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    token: str = Field(min_length=1, max_length=4096)


class DeviceResponse(BaseModel):
    user_id: str
    platform: Optional[str] = None
    updated_at: datetime
    created: bool = Field(description="False when an existing token row was updated")

    model_config = {"from_attributes": True}


class DeviceRemovalResponse(BaseModel):
    removed: int
