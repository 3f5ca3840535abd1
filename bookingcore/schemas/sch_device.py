from pydantic import BaseModel, Field
from typing import List

class DeviceTokenRequest(BaseModel):
    token: str = Field(min_length=1, max_length=4096)

class DeviceTokenResponse(BaseModel):
    message: str
    tokens: List[str]
