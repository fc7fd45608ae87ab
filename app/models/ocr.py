from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .conversion import Base64Document


class OCRRequest(Base64Document):
    folder_id: Optional[str] = Field(default=None, alias="folderId", description="Upload pages here too (optional).")
    access_token: Optional[str] = Field(default=None, alias="accessToken")

    @model_validator(mode="after")
    def _upload_pair(self) -> "OCRRequest":
        if bool(self.folder_id) != bool(self.access_token):
            raise ValueError("folderId and accessToken must be provided together")
        return self

    @property
    def wants_upload(self) -> bool:
        return bool(self.folder_id and self.access_token)


class DrivePageRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: Optional[int] = Field(default=None, ge=1)
    file_id: Optional[str] = Field(default=None, alias="fileId")


class DriveOCRRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", min_length=1)
    jpegs: List[DrivePageRef] = Field(..., min_length=1)


class PageText(BaseModel):
    page: int
    text: str
